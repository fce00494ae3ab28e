from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Stored documents use the camelCase field names of the storefront; Python
# code uses snake_case attributes through aliases.


class Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> dict:
        """Dump for storage: aliased field names, no ``id`` (it lives in ``_id``)."""
        return self.model_dump(by_alias=True, exclude={"id"})


# --------- Catalog ---------

class ColorName(Document):
    """The three renderings of one variant name. They name the same variant."""

    en: str = Field(..., min_length=1)
    fr: str = Field(..., min_length=1)
    ar: str = Field(..., min_length=1)

    def renderings(self) -> List[str]:
        return [self.en, self.fr, self.ar]


class Variant(Document):
    color_name: ColorName = Field(..., alias="colorName")
    images: List[str] = Field(default_factory=list)
    stock: int = Field(0, ge=0)


class Product(Document):
    id: Optional[str] = None
    title: str = Field(..., description="Product title")
    description: Optional[str] = None
    cover_image: Optional[str] = Field(None, alias="coverImage")
    colors: List[Variant] = Field(default_factory=list)
    old_price: Optional[float] = Field(None, ge=0, alias="oldPrice")
    new_price: float = Field(..., ge=0, alias="newPrice")
    stock_quantity: int = Field(0, ge=0, alias="stockQuantity")
    trending: bool = False
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    def total_stock(self) -> int:
        return sum(color.stock for color in self.colors)


# --------- Requested variant names ---------

class SingleName(BaseModel):
    """A variant name given as one flattened string, language unknown."""

    kind: Literal["single"] = "single"
    name: str


class MultilingualName(BaseModel):
    """A variant name given per language; any language may be missing."""

    kind: Literal["multilingual"] = "multilingual"
    en: Optional[str] = None
    fr: Optional[str] = None
    ar: Optional[str] = None

    def renderings(self) -> List[str]:
        return [value for value in (self.en, self.fr, self.ar) if value]

    def is_complete(self) -> bool:
        return bool(self.en and self.fr and self.ar)


VariantName = Union[SingleName, MultilingualName]


class PartialColorName(BaseModel):
    en: Optional[str] = None
    fr: Optional[str] = None
    ar: Optional[str] = None


# --------- Orders ---------

class ColorSnapshot(Document):
    """Variant name and image captured when the order was placed.

    ``color_name`` is always complete, with placeholders for languages the
    customer did not give. ``requested`` keeps only the renderings they did
    give, and is empty when the line was ordered without a color.
    """

    color_name: ColorName = Field(..., alias="colorName")
    image: str = ""
    requested: List[str] = Field(default_factory=list)

    def stock_name(self) -> Union[List[str], ColorName]:
        """Name to resolve the catalog variant with when moving stock for this line."""
        return self.requested or self.color_name


class LineItem(Document):
    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., ge=1)
    color: ColorSnapshot

    def key(self, lang: str = "en") -> str:
        return f"{self.product_id}|{getattr(self.color.color_name, lang)}"

    def matches(self, product_id: str, color_display: str) -> bool:
        return (
            self.product_id == product_id
            and color_display in self.color.color_name.renderings()
        )


class Address(Document):
    street: str
    city: str
    state: str
    country: str
    zipcode: str


class Order(Document):
    id: Optional[str] = None
    name: str = Field(..., description="Customer full name")
    email: str
    phone: str
    address: Address
    products: List[LineItem] = Field(default_factory=list)
    total_price: float = Field(..., ge=0, alias="totalPrice")
    is_paid: bool = Field(False, alias="isPaid")
    is_delivered: bool = Field(False, alias="isDelivered")
    product_progress: Dict[str, int] = Field(default_factory=dict, alias="productProgress")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    def find_line(self, product_id: str, color_display: str) -> Optional[int]:
        """Index of the first line matching the key pair, or None."""
        for index, line in enumerate(self.products):
            if line.matches(product_id, color_display):
                return index
        return None


# --------- Request bodies ---------

class LineColorRequest(Document):
    color_name: Union[str, PartialColorName, None] = Field(None, alias="colorName")
    image: Optional[str] = None

    def variant_name(self) -> Optional[VariantName]:
        if isinstance(self.color_name, str):
            return SingleName(name=self.color_name)
        if isinstance(self.color_name, PartialColorName):
            return MultilingualName(**self.color_name.model_dump())
        return None


class LineRequest(Document):
    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., ge=1)
    color: Optional[LineColorRequest] = None
    cover_image: Optional[str] = Field(None, alias="coverImage")


class OrderCreate(Document):
    name: str
    email: str
    phone: str
    address: Address
    products: List[LineRequest]
    total_price: float = Field(..., ge=0, alias="totalPrice")


class OrderFlagsUpdate(Document):
    is_paid: Optional[bool] = Field(None, alias="isPaid")
    is_delivered: Optional[bool] = Field(None, alias="isDelivered")
    product_progress: Optional[Dict[str, int]] = Field(None, alias="productProgress")


class RemoveLineRequest(Document):
    order_id: str = Field(..., alias="orderId")
    product_key: str = Field(..., alias="productKey", description="productId|colorName")
    quantity_to_remove: int = Field(..., ge=1, alias="quantityToRemove")


class ProgressNotification(Document):
    order_id: str = Field(..., alias="orderId")
    product_key: str = Field(..., alias="productKey")
    progress: int = Field(..., ge=0, le=100)
    article_index: Optional[int] = Field(None, alias="articleIndex")
