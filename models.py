"""Record types held by the in-memory store.

Records are frozen dataclasses. The store swaps in a new instance on every
mutation, so a record handed to a caller never changes underneath it.
Relations between records are plain ids.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Tuple

from errors import ValidationError


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Statuses an order may move to from each status. Delivered and cancelled are final.
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def normalize_email(email: str) -> str:
    """Canonical form used for storage and every email lookup."""
    return (email or "").strip().lower()


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class PublicUser:
    """User view with the password hash removed."""

    id: str
    name: str
    email: str
    role: Role
    created_at: datetime
    updated_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    password_hash: str = field(repr=False)
    role: Role
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            try:
                object.__setattr__(self, "role", Role(self.role))
            except ValueError as exc:
                raise ValidationError(f"Unknown role: {self.role!r}") from exc
        if self.email != normalize_email(self.email):
            object.__setattr__(self, "email", normalize_email(self.email))
        if not self.email:
            raise ValidationError("Email is required.")

    def public(self) -> PublicUser:
        return PublicUser(
            id=self.id,
            name=self.name,
            email=self.email,
            role=self.role,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    description: str
    price: Decimal
    currency: str
    category: str
    image: str
    rating: float
    num_reviews: int
    count_in_stock: int
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.price, Decimal):
            raise ValidationError("Price must be a decimal amount.")
        if self.price < 0:
            raise ValidationError("Price cannot be negative.")
        if not isinstance(self.count_in_stock, int) or self.count_in_stock < 0:
            raise ValidationError("Stock count cannot be negative.")
        if not isinstance(self.num_reviews, int) or self.num_reviews < 0:
            raise ValidationError("Review count cannot be negative.")
        if not 0 <= self.rating <= 5:
            raise ValidationError("Rating must be between 0 and 5.")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "currency": self.currency,
            "category": self.category,
            "image": self.image,
            "rating": self.rating,
            "numReviews": self.num_reviews,
            "countInStock": self.count_in_stock,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


# Wire names accepted in product payloads, mapped to record fields.
PRODUCT_FIELDS = {
    "name": "name",
    "description": "description",
    "price": "price",
    "currency": "currency",
    "category": "category",
    "image": "image",
    "rating": "rating",
    "numReviews": "num_reviews",
    "countInStock": "count_in_stock",
}


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    name: str
    quantity: int
    unit_price: Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError("Order quantities must be positive.")
        if not isinstance(self.unit_price, Decimal) or self.unit_price < 0:
            raise ValidationError("Unit price must be a non-negative decimal.")

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unitPrice": str(self.unit_price),
            "subtotal": str(self.subtotal),
        }


@dataclass(frozen=True)
class Order:
    id: str
    user_id: str
    items: Tuple[OrderItem, ...]
    status: OrderStatus
    total: Decimal
    currency: str
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.status, OrderStatus):
            try:
                object.__setattr__(self, "status", OrderStatus(self.status))
            except ValueError as exc:
                raise ValidationError(f"Unknown order status: {self.status!r}") from exc
        if not self.items:
            raise ValidationError("An order needs at least one item.")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "status": self.status.value,
            "total": str(self.total),
            "currency": self.currency,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


@dataclass(frozen=True)
class CartItem:
    id: str
    user_id: str
    product_id: str
    quantity: int
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool) or self.quantity <= 0:
            raise ValidationError("Quantity must be a positive whole number.")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


@dataclass(frozen=True)
class Session:
    id: str = field(repr=False)
    user_id: str
    created_at: datetime
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at
