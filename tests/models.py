from __future__ import annotations

from dataclasses import dataclass, field

import sqlalchemy as sa

from sqla_includes import NamingConvention, key


metadata = sa.MetaData()

categories_table = sa.Table(
    "categories",
    metadata,
    sa.Column("category_id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(100), nullable=False),
)

customer_addresses_table = sa.Table(
    "customer_addresses",
    metadata,
    sa.Column("address_id", sa.Integer, primary_key=True),
    sa.Column("street", sa.String(200), nullable=False),
    sa.Column("city", sa.String(100), nullable=False),
)

customers_table = sa.Table(
    "customers",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("customer_id", sa.Integer, nullable=False),
    sa.Column("address_id", sa.Integer, sa.ForeignKey("customer_addresses.address_id")),
    sa.Column("name", sa.String(100), nullable=False),
)

orders_table = sa.Table(
    "orders",
    metadata,
    sa.Column("order_id", sa.Integer, primary_key=True),
    sa.Column("customer_id", sa.Integer, sa.ForeignKey("customers.id"), nullable=False),
    sa.Column("category_id", sa.Integer, sa.ForeignKey("categories.category_id")),
    sa.Column("order_date", sa.String(10), nullable=False),
    sa.Column("amount", sa.Float, nullable=False),
)

order_details_table = sa.Table(
    "order_details",
    metadata,
    sa.Column("detail_id", sa.Integer, primary_key=True),
    sa.Column("order_id", sa.Integer, sa.ForeignKey("orders.order_id"), nullable=False),
    sa.Column("product_name", sa.String(100), nullable=False),
    sa.Column("quantity", sa.Integer, nullable=False),
)

notes_table = sa.Table(
    "notes",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("customer_id", sa.Integer, sa.ForeignKey("customers.id"), nullable=False),
    sa.Column("text", sa.Text, nullable=False),
)


@dataclass
class Category:
    category_id: int = key(default=0)
    name: str = ""


@dataclass
class OrderDetail:
    # no conventional key: callers pass it explicitly
    detail_id: int = 0
    order_id: int = 0
    product_name: str = ""
    quantity: int = 0


@dataclass
class Order:
    order_id: int = key(default=0)
    customer_id: int = 0
    category_id: int | None = None
    order_date: str = ""
    amount: float = 0.0

    # navigations
    detail: OrderDetail | None = None
    category: Category | None = None


@dataclass
class CustomerAddress:
    __tablename__ = "customer_addresses"

    address_id: int = key(default=0)
    street: str = ""
    city: str = ""


@dataclass
class Note:
    id: int = 0
    customer_id: int = 0
    text: str = ""


@dataclass
class Customer:
    id: int = 0
    customer_id: int = 0
    address_id: int | None = None
    name: str = ""

    # navigations
    orders: list[Order] = field(default_factory=list)
    notes: list[Note] = field(default_factory=list)
    address: CustomerAddress | None = None


PLURAL = NamingConvention(plural_table_names=True)

SEED: dict[sa.Table, list[dict[str, object]]] = {
    categories_table: [{"category_id": 1, "name": "Test Category"}],
    customer_addresses_table: [
        {"address_id": 1, "street": "Test Street", "city": "Test City"},
    ],
    customers_table: [
        {"id": 1, "customer_id": 1, "address_id": 1, "name": "Test Customer"},
        {"id": 2, "customer_id": 2, "address_id": None, "name": "Another Customer"},
    ],
    orders_table: [
        {"order_id": 1, "customer_id": 1, "category_id": 1, "order_date": "2024-01-01", "amount": 100.0},
        {"order_id": 2, "customer_id": 1, "category_id": None, "order_date": "2024-01-02", "amount": 50.0},
    ],
    order_details_table: [
        {"detail_id": 1, "order_id": 1, "product_name": "Test Product", "quantity": 5},
    ],
    notes_table: [
        {"id": 1, "customer_id": 1, "text": "first"},
        {"id": 2, "customer_id": 1, "text": "second"},
        {"id": 3, "customer_id": 1, "text": "third"},
    ],
}
