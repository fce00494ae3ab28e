"""Variant resolution and stock adjustment.

A variant name reaches us in several shapes: the catalog's full three-language
record, an order's snapshot of that record, a cart entry carrying only some
languages, the list of renderings a customer typed as kept on an order line,
or a single display string cut out of a ``productId|color`` key.
All of them go through ``name_renderings`` and are compared as sets of
trimmed, lowercased strings. A catalog variant matches when any of its
renderings equals any requested rendering.

Every stock mutation goes through ``InventoryLedger.apply_delta``. Stock is
clamped at zero and the product's ``stock_quantity`` is recomputed by the
store in the same write as the variant's stock.
"""

import os
from typing import List, Optional, Set, Union

import structlog

from errors import ResolutionFailure, StockConflict
from schemas import ColorName, MultilingualName, Product, SingleName

logger = structlog.get_logger(__name__)

NameLike = Union[SingleName, MultilingualName, ColorName, List[str], str]


def normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def name_renderings(name: Optional[NameLike]) -> Set[str]:
    """Normalized, non-empty renderings of a variant name in any shape."""
    if name is None:
        values = []
    elif isinstance(name, str):
        values = [name]
    elif isinstance(name, SingleName):
        values = [name.name]
    elif isinstance(name, list):
        values = name
    else:
        values = name.renderings()
    return {normalize(v) for v in values} - {""}


def describe(name: Optional[NameLike]) -> str:
    return " / ".join(sorted(name_renderings(name)))


def resolve_variant(product: Product, requested: Optional[NameLike]) -> Optional[int]:
    """Index of the first variant of ``product`` matching ``requested``, or None."""
    wanted = name_renderings(requested)
    if not wanted:
        return None
    for index, variant in enumerate(product.colors):
        if name_renderings(variant.color_name) & wanted:
            return index
    return None


class InventoryLedger:
    """Applies signed stock deltas to catalog variants.

    Writes are compare-and-swap on the variant's stock value. When another
    writer got there first the product is reloaded, the variant re-resolved by
    name and the delta recomputed, up to ``max_attempts`` times.
    """

    def __init__(self, catalog, max_attempts: Optional[int] = None):
        self.catalog = catalog
        if max_attempts is None:
            max_attempts = int(os.getenv("STOCK_CAS_RETRIES", "5"))
        self.max_attempts = max_attempts

    def apply_delta(self, product: Product, variant_index: int, delta: int) -> Product:
        color_name = product.colors[variant_index].color_name
        for attempt in range(1, self.max_attempts + 1):
            current = product.colors[variant_index].stock
            new = max(current + delta, 0)
            if self.catalog.compare_and_set_stock(product.id, variant_index, current, new):
                if current + delta < 0:
                    logger.warning(
                        "Stock decrement clamped at zero",
                        product_id=product.id,
                        color=color_name.en,
                        requested=-delta,
                        available=current,
                    )
                updated = self.catalog.find_product_by_id(product.id)
                logger.info(
                    "Stock adjusted",
                    product_id=product.id,
                    color=color_name.en,
                    delta=delta,
                    stock_before=current,
                    stock_after=new,
                    stock_quantity=updated.stock_quantity if updated else None,
                )
                return updated

            logger.debug(
                "Stock changed concurrently, retrying",
                product_id=product.id,
                color=color_name.en,
                attempt=attempt,
            )
            fresh = self.catalog.find_product_by_id(product.id)
            if fresh is None:
                raise ResolutionFailure(product.id, "product no longer exists")
            index = resolve_variant(fresh, color_name)
            if index is None:
                raise ResolutionFailure(product.id, "variant no longer exists", color=color_name.en)
            product, variant_index = fresh, index

        raise StockConflict(product.id, variant_index, self.max_attempts)

    def adjust(self, product_id: str, requested: Optional[NameLike], delta: int) -> Product:
        """Resolve ``requested`` on the live product and apply ``delta`` to it."""
        product = self.catalog.find_product_by_id(product_id)
        if product is None:
            raise ResolutionFailure(product_id, "product not found")
        index = resolve_variant(product, requested)
        if index is None:
            raise ResolutionFailure(product_id, "no variant matches", color=describe(requested))
        return self.apply_delta(product, index, delta)
