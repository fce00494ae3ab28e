"""Catalog and order persistence.

Both stores come in two flavours with the same interface: a MongoDB one used
by the running service and an in-process one used by tests and local runs.
Neither offers multi-document transactions. The only conditional write is
``compare_and_set_stock``, which updates one variant's stock if it still holds
the value the caller read and recomputes the product's aggregate stock in the
same document write.
"""

import itertools
import threading
from typing import Dict, Iterable, List, Optional, Protocol

from bson import ObjectId
from pymongo import DESCENDING

from database import create_document, get_documents, new_id, serialize_doc, to_object_id, utcnow
from schemas import Order, Product


class CatalogStore(Protocol):
    def find_product_by_id(self, product_id: str) -> Optional[Product]: ...

    def find_products_by_ids(self, product_ids: Iterable[str]) -> List[Product]: ...

    def list_products(self) -> List[Product]: ...

    def count_products(self) -> int: ...

    def save(self, product: Product) -> Product: ...

    def compare_and_set_stock(self, product_id: str, index: int, expected: int, new: int) -> bool: ...


class OrderStore(Protocol):
    def find_order_by_id(self, order_id: str) -> Optional[Order]: ...

    def find_orders_by_email(self, email: str) -> List[Order]: ...

    def find_all(self) -> List[Order]: ...

    def save(self, order: Order) -> Order: ...

    def delete(self, order_id: str) -> None: ...


# --------- MongoDB ---------

class MongoCatalogStore:
    def __init__(self, db):
        self.collection = db["product"]

    def find_product_by_id(self, product_id: str) -> Optional[Product]:
        if not ObjectId.is_valid(product_id):
            return None
        doc = self.collection.find_one({"_id": ObjectId(product_id)})
        if not doc:
            return None
        return Product.model_validate(serialize_doc(doc))

    def find_products_by_ids(self, product_ids: Iterable[str]) -> List[Product]:
        ids = [ObjectId(pid) for pid in set(product_ids) if ObjectId.is_valid(pid)]
        if not ids:
            return []
        docs = get_documents(self.collection, {"_id": {"$in": ids}})
        return [Product.model_validate(serialize_doc(d)) for d in docs]

    def list_products(self) -> List[Product]:
        docs = get_documents(self.collection, sort=[("createdAt", DESCENDING)])
        return [Product.model_validate(serialize_doc(d)) for d in docs]

    def count_products(self) -> int:
        return self.collection.count_documents({})

    def save(self, product: Product) -> Product:
        doc = product.to_document()
        if product.id is None:
            product_id = create_document(self.collection, doc)
        else:
            product_id = product.id
            doc["updatedAt"] = utcnow()
            self.collection.replace_one({"_id": to_object_id(product_id)}, doc, upsert=True)
        return self.find_product_by_id(product_id)

    def compare_and_set_stock(self, product_id: str, index: int, expected: int, new: int) -> bool:
        if not ObjectId.is_valid(product_id):
            return False
        stock_path = f"colors.{index}.stock"
        # A variant saved without a stock field reads as 0.
        current = {"$in": [0, None]} if expected == 0 else expected
        result = self.collection.update_one(
            {"_id": ObjectId(product_id), stock_path: current},
            [
                {
                    "$set": {
                        "colors": {
                            "$map": {
                                "input": {"$range": [0, {"$size": "$colors"}]},
                                "as": "i",
                                "in": {
                                    "$cond": [
                                        {"$eq": ["$$i", index]},
                                        {"$mergeObjects": [{"$arrayElemAt": ["$colors", "$$i"]}, {"stock": new}]},
                                        {"$arrayElemAt": ["$colors", "$$i"]},
                                    ]
                                },
                            }
                        },
                        "updatedAt": "$$NOW",
                    }
                },
                {"$set": {"stockQuantity": {"$sum": "$colors.stock"}}},
            ],
        )
        return result.matched_count == 1


class MongoOrderStore:
    def __init__(self, db):
        self.collection = db["order"]

    def _load(self, docs) -> List[Order]:
        return [Order.model_validate(serialize_doc(d)) for d in docs]

    def find_order_by_id(self, order_id: str) -> Optional[Order]:
        if not ObjectId.is_valid(order_id):
            return None
        doc = self.collection.find_one({"_id": ObjectId(order_id)})
        if not doc:
            return None
        return Order.model_validate(serialize_doc(doc))

    def find_orders_by_email(self, email: str) -> List[Order]:
        return self._load(get_documents(self.collection, {"email": email}, sort=[("createdAt", DESCENDING)]))

    def find_all(self) -> List[Order]:
        return self._load(get_documents(self.collection, sort=[("createdAt", DESCENDING)]))

    def save(self, order: Order) -> Order:
        doc = order.to_document()
        if order.id is None:
            order_id = create_document(self.collection, doc)
        else:
            order_id = order.id
            doc["updatedAt"] = utcnow()
            self.collection.replace_one({"_id": to_object_id(order_id)}, doc, upsert=True)
        return self.find_order_by_id(order_id)

    def delete(self, order_id: str) -> None:
        self.collection.delete_one({"_id": to_object_id(order_id)})


# --------- In-process ---------

class InMemoryCatalogStore:
    def __init__(self, products: Iterable[Product] = ()):
        self._products: Dict[str, Product] = {}
        self._lock = threading.Lock()
        for product in products:
            self.save(product)

    def find_product_by_id(self, product_id: str) -> Optional[Product]:
        product = self._products.get(product_id)
        return product.model_copy(deep=True) if product else None

    def find_products_by_ids(self, product_ids: Iterable[str]) -> List[Product]:
        found = (self.find_product_by_id(pid) for pid in set(product_ids))
        return [p for p in found if p is not None]

    def list_products(self) -> List[Product]:
        products = sorted(self._products.values(), key=lambda p: p.created_at, reverse=True)
        return [p.model_copy(deep=True) for p in products]

    def count_products(self) -> int:
        return len(self._products)

    def save(self, product: Product) -> Product:
        now = utcnow()
        stored = product.model_copy(deep=True)
        if stored.id is None:
            stored.id = new_id()
        if stored.created_at is None:
            stored.created_at = now
        stored.updated_at = now
        with self._lock:
            self._products[stored.id] = stored
        return stored.model_copy(deep=True)

    def compare_and_set_stock(self, product_id: str, index: int, expected: int, new: int) -> bool:
        with self._lock:
            product = self._products.get(product_id)
            if product is None or index >= len(product.colors):
                return False
            if product.colors[index].stock != expected:
                return False
            product.colors[index].stock = new
            product.stock_quantity = product.total_stock()
            product.updated_at = utcnow()
            return True

    def delete(self, product_id: str) -> None:
        with self._lock:
            self._products.pop(product_id, None)


class InMemoryOrderStore:
    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._sequence: Dict[str, int] = {}
        self._counter = itertools.count()

    def _newest_first(self, orders) -> List[Order]:
        ordered = sorted(orders, key=lambda o: (o.created_at, self._sequence[o.id]), reverse=True)
        return [o.model_copy(deep=True) for o in ordered]

    def find_order_by_id(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    def find_orders_by_email(self, email: str) -> List[Order]:
        return self._newest_first(o for o in self._orders.values() if o.email == email)

    def find_all(self) -> List[Order]:
        return self._newest_first(self._orders.values())

    def save(self, order: Order) -> Order:
        now = utcnow()
        stored = order.model_copy(deep=True)
        if stored.id is None:
            stored.id = new_id()
        if stored.created_at is None:
            stored.created_at = now
        stored.updated_at = now
        self._sequence.setdefault(stored.id, next(self._counter))
        self._orders[stored.id] = stored
        return stored.model_copy(deep=True)

    def delete(self, order_id: str) -> None:
        self._orders.pop(order_id, None)
