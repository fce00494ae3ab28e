"""Pytest fixtures: in-process stores, a product factory and a recording notifier."""

import pytest

from errors import NotificationFailed
from orders import OrderService
from schemas import Address, ColorName, LineColorRequest, LineRequest, OrderCreate, Product, Variant
from stores import InMemoryCatalogStore, InMemoryOrderStore


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, recipient, subject, html_body):
        if self.fail:
            raise NotificationFailed(recipient, "connection refused")
        self.sent.append({"recipient": recipient, "subject": subject, "body": html_body})


def build_product(title="Aviator", price=100.0, colors=(("Black", "Noir", "أسود", 10),)):
    variants = [
        Variant(
            color_name=ColorName(en=en, fr=fr, ar=ar),
            images=[f"{en.lower()}-front.jpg"],
            stock=stock,
        )
        for en, fr, ar, stock in colors
    ]
    return Product(
        title=title,
        cover_image=f"{title.lower()}-cover.jpg",
        colors=variants,
        old_price=price * 1.2,
        new_price=price,
        stock_quantity=sum(v.stock for v in variants),
    )


@pytest.fixture
def catalog():
    return InMemoryCatalogStore()


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(catalog, order_store, notifier):
    return OrderService(catalog, order_store, notifier, shop_name="Atelier Test")


@pytest.fixture
def add_product(catalog):
    """Save a product built from ``build_product`` keyword arguments."""

    def _add(**kwargs):
        return catalog.save(build_product(**kwargs))

    return _add


@pytest.fixture
def black_product(add_product):
    return add_product()


@pytest.fixture
def order_request():
    """Build an ``OrderCreate`` from ``(product_id, quantity, color_name)`` tuples."""

    def _build(*lines, total_price=0, email="amina@example.com"):
        return OrderCreate(
            name="Amina Benali",
            email=email,
            phone="0600000000",
            address=Address(
                street="12 Rue des Oliviers",
                city="Casablanca",
                state="Casablanca-Settat",
                country="Morocco",
                zipcode="20000",
            ),
            products=[
                LineRequest(
                    product_id=product_id,
                    quantity=quantity,
                    color=LineColorRequest(color_name=color_name) if color_name is not None else None,
                )
                for product_id, quantity, color_name in lines
            ],
            total_price=total_price,
        )

    return _build
