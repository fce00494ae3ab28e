"""Tests for variant resolution and the inventory ledger."""

import pytest

from conftest import build_product
from errors import ResolutionFailure, StockConflict
from inventory import InventoryLedger, name_renderings, normalize, resolve_variant
from schemas import ColorName, MultilingualName, SingleName
from stores import InMemoryCatalogStore

THREE_COLORS = (
    ("Black", "Noir", "أسود", 10),
    ("Gold", "Doré", "ذهبي", 4),
    ("Tortoise", "Écaille", "صدفي", 0),
)


class TestNormalize:
    def test_trims_and_lowercases(self):
        assert normalize("  BLACK ") == "black"

    def test_none_is_empty(self):
        assert normalize(None) == ""

    def test_renderings_drop_empty_values(self):
        assert name_renderings(MultilingualName(en="Black", fr="  ")) == {"black"}


class TestResolveVariant:
    @pytest.fixture
    def product(self):
        return build_product(colors=THREE_COLORS)

    def test_matches_english_single_name(self, product):
        assert resolve_variant(product, SingleName(name="Gold")) == 1

    def test_matches_french_rendering(self, product):
        assert resolve_variant(product, SingleName(name="Écaille")) == 2

    def test_arabic_only_request_matches(self, product):
        assert resolve_variant(product, MultilingualName(ar="ذهبي")) == 1

    def test_comparison_ignores_case_and_surrounding_space(self, product):
        assert resolve_variant(product, SingleName(name="  noir ")) == 0

    def test_plain_string_request(self, product):
        assert resolve_variant(product, "tortoise") == 2

    def test_list_of_supplied_renderings(self, product):
        assert resolve_variant(product, ["  ", "Écaille"]) == 2

    def test_full_snapshot_matches(self, product):
        assert resolve_variant(product, ColorName(en="Gold", fr="Doré", ar="ذهبي")) == 1

    def test_any_rendering_may_match_any_language(self, product):
        # An English field holding the French word still resolves.
        assert resolve_variant(product, MultilingualName(en="Doré")) == 1

    def test_unknown_name_is_not_found(self, product):
        assert resolve_variant(product, SingleName(name="Silver")) is None

    def test_no_fuzzy_matching(self, product):
        assert resolve_variant(product, SingleName(name="Blac")) is None

    def test_empty_request_is_not_found(self, product):
        assert resolve_variant(product, MultilingualName()) is None
        assert resolve_variant(product, None) is None


class TestInventoryLedger:
    @pytest.fixture
    def catalog(self):
        return InMemoryCatalogStore()

    @pytest.fixture
    def product(self, catalog):
        return catalog.save(build_product(colors=THREE_COLORS))

    def test_decrement_updates_variant_and_aggregate(self, catalog, product):
        updated = InventoryLedger(catalog).apply_delta(product, 0, -3)

        assert updated.colors[0].stock == 7
        assert updated.stock_quantity == 7 + 4 + 0
        assert catalog.find_product_by_id(product.id).colors[0].stock == 7

    def test_increment_restores_stock(self, catalog, product):
        updated = InventoryLedger(catalog).apply_delta(product, 2, 5)

        assert updated.colors[2].stock == 5
        assert updated.stock_quantity == 19

    def test_overshooting_decrement_clamps_at_zero(self, catalog, product):
        updated = InventoryLedger(catalog).apply_delta(product, 1, -9)

        assert updated.colors[1].stock == 0
        assert updated.stock_quantity == 10

    def test_aggregate_is_recomputed_not_carried(self, catalog):
        product = build_product(colors=THREE_COLORS)
        product.stock_quantity = 999
        product = catalog.save(product)

        updated = InventoryLedger(catalog).apply_delta(product, 0, -1)

        assert updated.stock_quantity == 9 + 4 + 0

    def test_adjust_resolves_by_name(self, catalog, product):
        updated = InventoryLedger(catalog).adjust(product.id, MultilingualName(fr="doré"), -2)

        assert updated.colors[1].stock == 2

    def test_adjust_unknown_product_raises_resolution_failure(self, catalog):
        with pytest.raises(ResolutionFailure) as exc_info:
            InventoryLedger(catalog).adjust("missing", SingleName(name="Black"), -1)
        assert exc_info.value.reason == "product not found"

    def test_adjust_unknown_variant_raises_resolution_failure(self, catalog, product):
        with pytest.raises(ResolutionFailure) as exc_info:
            InventoryLedger(catalog).adjust(product.id, SingleName(name="Silver"), -1)
        assert exc_info.value.product_id == product.id
        assert exc_info.value.color == "silver"


class RacingCatalog(InMemoryCatalogStore):
    """Lets another writer take one unit just before our first write lands."""

    def __init__(self):
        super().__init__()
        self.raced = False

    def compare_and_set_stock(self, product_id, index, expected, new):
        if not self.raced:
            self.raced = True
            super().compare_and_set_stock(product_id, index, expected, expected - 1)
        return super().compare_and_set_stock(product_id, index, expected, new)


class StuckCatalog(InMemoryCatalogStore):
    def __init__(self):
        super().__init__()
        self.attempts = 0

    def compare_and_set_stock(self, product_id, index, expected, new):
        self.attempts += 1
        return False


class TestLedgerConcurrency:
    def test_lost_update_is_retried_against_fresh_stock(self):
        catalog = RacingCatalog()
        product = catalog.save(build_product())

        updated = InventoryLedger(catalog).apply_delta(product, 0, -3)

        # The concurrent writer's unit is kept: 10 - 1 - 3.
        assert updated.colors[0].stock == 6
        assert updated.stock_quantity == 6

    def test_gives_up_after_max_attempts(self):
        catalog = StuckCatalog()
        product = catalog.save(build_product())

        with pytest.raises(StockConflict) as exc_info:
            InventoryLedger(catalog, max_attempts=3).apply_delta(product, 0, -1)

        assert exc_info.value.attempts == 3
        assert catalog.attempts == 3
        assert catalog.find_product_by_id(product.id).colors[0].stock == 10

    def test_zero_attempts_writes_nothing(self):
        catalog = StuckCatalog()
        product = catalog.save(build_product())

        with pytest.raises(StockConflict) as exc_info:
            InventoryLedger(catalog, max_attempts=0).apply_delta(product, 0, -1)

        assert exc_info.value.attempts == 0
        assert catalog.attempts == 0

    def test_attempts_default_from_env(self, monkeypatch):
        monkeypatch.setenv("STOCK_CAS_RETRIES", "2")
        assert InventoryLedger(InMemoryCatalogStore()).max_attempts == 2

        monkeypatch.setenv("STOCK_CAS_RETRIES", "7")
        assert InventoryLedger(InMemoryCatalogStore(), max_attempts=0).max_attempts == 0

    def test_variant_removed_between_attempts(self):
        catalog = RacingCatalog()
        product = catalog.save(build_product(colors=THREE_COLORS))
        renamed = catalog.find_product_by_id(product.id)
        renamed.colors[0].color_name = ColorName(en="Onyx", fr="Onyx", ar="أونيكس")
        catalog.save(renamed)

        with pytest.raises(ResolutionFailure):
            InventoryLedger(catalog).apply_delta(product, 0, -1)
