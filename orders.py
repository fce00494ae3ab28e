"""Order lifecycle operations.

Each operation validates existence and quantities before it mutates anything.
Stock adjustments made while creating, trimming or deleting an order are
best-effort: when the product or variant can no longer be resolved the
adjustment is skipped with a warning and the order-side change still happens.
The order write and the stock writes are separate operations.
"""

from typing import Dict, List, Optional, Tuple

import structlog

from errors import (
    InvalidQuantity,
    InvalidRequest,
    LineNotFound,
    OrderNotFound,
    ProductNotFound,
    ResolutionFailure,
    StockConflict,
)
from inventory import InventoryLedger, NameLike, describe, resolve_variant
from notifications import Notifier, progress_email
from schemas import (
    ColorName,
    ColorSnapshot,
    LineItem,
    LineRequest,
    MultilingualName,
    Order,
    OrderCreate,
    OrderFlagsUpdate,
    Product,
    SingleName,
    VariantName,
)

logger = structlog.get_logger(__name__)

DEFAULT_COLOR_NAME = "Original"
DEFAULT_COLOR_NAME_AR = "أصلي"
DEFAULT_COVER_IMAGE = "/assets/default-image.png"


def split_line_key(line_key: str) -> Tuple[str, str]:
    """Split ``productId|colorName`` into its two parts."""
    product_id, sep, color = (line_key or "").partition("|")
    if not sep or not product_id or not color:
        raise InvalidRequest(f"Invalid product key: {line_key!r}")
    return product_id, color


def snapshot_name(requested: Optional[VariantName]) -> ColorName:
    """Three-language name to store on a new order line.

    A complete multilingual request is kept as is. Otherwise English and French
    fall back to whatever rendering was supplied and Arabic to a placeholder.
    """
    if isinstance(requested, MultilingualName):
        if requested.is_complete():
            return ColorName(en=requested.en, fr=requested.fr, ar=requested.ar)
        given = (requested.renderings() or [DEFAULT_COLOR_NAME])[0]
        return ColorName(
            en=requested.en or given,
            fr=requested.fr or given,
            ar=requested.ar or DEFAULT_COLOR_NAME_AR,
        )
    if isinstance(requested, SingleName) and requested.name.strip():
        return ColorName(en=requested.name, fr=requested.name, ar=DEFAULT_COLOR_NAME_AR)
    return ColorName(en=DEFAULT_COLOR_NAME, fr=DEFAULT_COLOR_NAME, ar=DEFAULT_COLOR_NAME_AR)


def given_renderings(requested: Optional[VariantName]) -> List[str]:
    """The non-blank renderings the customer supplied, in the order given."""
    if isinstance(requested, SingleName):
        values = [requested.name]
    elif isinstance(requested, MultilingualName):
        values = requested.renderings()
    else:
        values = []
    return [value for value in values if value.strip()]


def validate_progress(progress: Dict[str, int]) -> None:
    for key, value in progress.items():
        if not 0 <= value <= 100:
            raise InvalidRequest(f"Progress for {key} must be between 0 and 100, got {value}")


class OrderService:
    def __init__(
        self,
        catalog,
        orders,
        notifier: Notifier,
        ledger: Optional[InventoryLedger] = None,
        shop_name: str = "Boutique",
    ):
        self.catalog = catalog
        self.orders = orders
        self.notifier = notifier
        self.ledger = ledger or InventoryLedger(catalog)
        self.shop_name = shop_name

    # --------- Helpers ---------

    def _load(self, order_id: str) -> Order:
        order = self.orders.find_order_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _adjust_stock(self, order_id: str, product_id: str, name: NameLike, delta: int) -> None:
        try:
            self.ledger.adjust(product_id, name, delta)
        except ResolutionFailure as exc:
            logger.warning(
                "Stock adjustment skipped",
                order_id=order_id,
                product_id=product_id,
                color=describe(name),
                delta=delta,
                reason=exc.reason,
            )
        except StockConflict as exc:
            logger.error(
                "Stock adjustment abandoned",
                order_id=order_id,
                product_id=product_id,
                color=describe(name),
                delta=delta,
                attempts=exc.attempts,
            )

    def _build_line(self, request: LineRequest, product: Product) -> LineItem:
        requested = request.color.variant_name() if request.color else None
        image = (request.color.image if request.color else None) or request.cover_image or product.cover_image
        if not image:
            index = resolve_variant(product, requested)
            if index is not None and product.colors[index].images:
                image = product.colors[index].images[0]
        return LineItem(
            product_id=request.product_id,
            quantity=request.quantity,
            color=ColorSnapshot(
                color_name=snapshot_name(requested),
                image=image or "",
                requested=given_renderings(requested),
            ),
        )

    def _reprice(self, lines: List[LineItem]) -> float:
        """Total of ``lines`` at current catalog prices; missing products count 0."""
        prices = {p.id: p.new_price for p in self.catalog.find_products_by_ids(line.product_id for line in lines)}
        return sum(prices.get(line.product_id, 0) * line.quantity for line in lines)

    # --------- Reads ---------

    def get_order_by_id(self, order_id: str) -> Order:
        return self._load(order_id)

    def get_orders_by_email(self, email: str) -> List[Order]:
        return self.orders.find_orders_by_email(email)

    def get_all_orders(self) -> List[dict]:
        """All orders, newest first, each line annotated with the product's cover image."""
        orders = self.orders.find_all()
        product_ids = {line.product_id for order in orders for line in order.products}
        products = {p.id: p for p in self.catalog.find_products_by_ids(product_ids)}

        result = []
        for order in orders:
            doc = order.model_dump(by_alias=True, mode="json")
            for line in doc["products"]:
                product = products.get(line["productId"])
                line["coverImage"] = (product.cover_image if product else None) or DEFAULT_COVER_IMAGE
            result.append(doc)
        return result

    # --------- Lifecycle ---------

    def create_order(self, payload: OrderCreate) -> Order:
        if not payload.products:
            raise InvalidRequest("Order has no products")

        lines = []
        for request in payload.products:
            product = self.catalog.find_product_by_id(request.product_id)
            if product is None:
                raise ProductNotFound(request.product_id)
            line = self._build_line(request, product)
            lines.append(line)

        order = Order(
            name=payload.name,
            email=payload.email,
            phone=payload.phone,
            address=payload.address,
            products=lines,
            total_price=payload.total_price,
        )
        saved = self.orders.save(order)
        logger.info("Order created", order_id=saved.id, email=saved.email, lines=len(lines))

        for line in saved.products:
            self._adjust_stock(saved.id, line.product_id, line.color.stock_name(), -line.quantity)
        return saved

    def remove_line(self, order_id: str, product_key: str, quantity: int) -> Order:
        """Take ``quantity`` units off the line keyed by ``product_key``.

        The first line whose product id matches and whose color snapshot holds
        the key's color in any language is used. Stock is restored for the
        removed units and the total is recomputed at current catalog prices.
        """
        if quantity < 1:
            raise InvalidQuantity(quantity)
        order = self._load(order_id)
        product_id, color = split_line_key(product_key)

        index = order.find_line(product_id, color)
        if index is None:
            raise LineNotFound(order_id, product_key)
        line = order.products[index]
        if line.quantity < quantity:
            raise InvalidQuantity(quantity, line.quantity)

        remaining = line.quantity - quantity
        if remaining > 0:
            order.products[index] = line.model_copy(update={"quantity": remaining})
        else:
            del order.products[index]

        self._adjust_stock(order.id, line.product_id, line.color.stock_name(), quantity)

        order.total_price = self._reprice(order.products)
        saved = self.orders.save(order)
        logger.info(
            "Order line reduced",
            order_id=saved.id,
            product_key=product_key,
            removed=quantity,
            remaining=remaining,
            total_price=saved.total_price,
        )
        return saved

    def delete_order(self, order_id: str) -> None:
        order = self._load(order_id)
        for line in order.products:
            self._adjust_stock(order.id, line.product_id, line.color.stock_name(), line.quantity)
        self.orders.delete(order.id)
        logger.info("Order deleted", order_id=order.id, line_keys=[line.key() for line in order.products])

    def update_order_flags(self, order_id: str, update: OrderFlagsUpdate) -> Order:
        """Overwrite supplied flags; the progress map is always replaced whole."""
        progress = dict(update.product_progress or {})
        validate_progress(progress)
        order = self._load(order_id)

        if update.is_paid is not None:
            order.is_paid = update.is_paid
        if update.is_delivered is not None:
            order.is_delivered = update.is_delivered
        order.product_progress = progress

        saved = self.orders.save(order)
        logger.info(
            "Order flags updated",
            order_id=saved.id,
            is_paid=saved.is_paid,
            is_delivered=saved.is_delivered,
            progress_keys=len(progress),
        )
        return saved

    def notify_progress(
        self,
        order_id: str,
        product_key: str,
        progress: int,
        article_index: Optional[int] = None,
    ) -> Order:
        """Record a line's fabrication progress and e-mail the customer.

        The progress is saved before the e-mail goes out; a failed send raises
        ``NotificationFailed`` and leaves the saved progress in place.
        """
        validate_progress({product_key: progress})
        order = self._load(order_id)
        product_id, color = split_line_key(product_key)
        if order.find_line(product_id, color) is None:
            raise LineNotFound(order_id, product_key)
        product = self.catalog.find_product_by_id(product_id)
        if product is None:
            raise ProductNotFound(product_id)

        order.product_progress[product_key] = progress
        saved = self.orders.save(order)

        subject, body = progress_email(
            customer_name=saved.name,
            order_id=saved.id,
            product_title=product.title,
            color=color,
            progress=progress,
            shop_name=self.shop_name,
            article_index=article_index,
        )
        self.notifier.send(saved.email, subject, body)
        logger.info("Progress notification sent", order_id=saved.id, product_key=product_key, progress=progress)
        return saved
