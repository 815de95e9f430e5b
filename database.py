"""Volatile, in-process record store for the T-Tech storefront.

Everything lives in dictionaries guarded by one re-entrant lock per
collection. Nothing is written to disk; a restart loses all data.

Compound operations that touch several collections always take the locks in
the same order: users, products, orders, cart items, sessions.
"""

from __future__ import annotations

import heapq
import logging
import re
import threading
from dataclasses import fields, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Generic, Iterable, List, Mapping, Optional, Tuple, TypeVar, Union
from uuid import uuid4

from errors import NotFoundError, ValidationError
from models import (
    ORDER_TRANSITIONS,
    CartItem,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Role,
    Session,
    User,
    normalize_email,
)
from seed_data.product_catalog import ADMIN_ACCOUNT, PRODUCT_CATALOG

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
RecordT = TypeVar("RecordT", User, Product, Order, CartItem, Session)

DEFAULT_CURRENCY = "GHS"
DEFAULT_CATEGORY = "General"
CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Return a collision-resistant opaque id.

    Ids carry no ordering; sort by ``created_at`` when chronology matters.
    """

    return uuid4().hex


# --------------------------------------------------------------------------------------
# Small coercion helpers
# --------------------------------------------------------------------------------------


def _as_int(value: object, field_name: str) -> int:
    """Strict conversion to int; floats with a fraction and booleans are rejected."""

    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a whole number.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field_name} must be a whole number.")


def _as_float(value: object, field_name: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number.")
    try:
        return float(str(value))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a number.") from exc


def _as_decimal(value: object, field_name: str) -> Decimal:
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)) and not isinstance(value, bool):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValidationError(f"{field_name} must be a decimal amount.") from exc
    else:
        raise ValidationError(f"{field_name} must be a decimal amount.")
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a decimal amount.")
    return amount


def _as_text(value: object, field_name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be text.")
    return value


_PRODUCT_COERCERS: Dict[str, Callable[[object, str], object]] = {
    "name": _as_text,
    "description": _as_text,
    "price": _as_decimal,
    "currency": _as_text,
    "category": _as_text,
    "image": _as_text,
    "rating": _as_float,
    "num_reviews": _as_int,
    "count_in_stock": _as_int,
}


def _coerce_product_fields(data: Mapping[str, object]) -> Dict[str, object]:
    unknown = set(data) - set(_PRODUCT_COERCERS)
    if unknown:
        raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")
    coerced = {key: _PRODUCT_COERCERS[key](value, key) for key, value in data.items()}
    if "name" in coerced and not str(coerced["name"]).strip():
        raise ValidationError("Product name is required.")
    if "currency" in coerced and not CURRENCY_PATTERN.match(str(coerced["currency"])):
        raise ValidationError("Currency must be a three-letter upper-case code such as GHS.")
    return coerced


# --------------------------------------------------------------------------------------
# Collections
# --------------------------------------------------------------------------------------


class Collection(Generic[RecordT]):
    """Keyed map of records of one type.

    Lookups for absent ids return ``None`` (or ``False`` for deletes) rather
    than raising; turning absence into "not found" is the caller's job.
    """

    IMMUTABLE_FIELDS = frozenset({"id", "created_at"})
    PROTECTED_FIELDS: frozenset = frozenset()

    def __init__(self, name: str, clock: Clock) -> None:
        self.name = name
        self._clock = clock
        self._records: Dict[str, RecordT] = {}
        self.lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def create(self, record: RecordT) -> RecordT:
        with self.lock:
            if record.id in self._records:
                raise ValidationError(f"Duplicate {self.name} id.")
            self._check_unique(record)
            self._records[record.id] = record
            self._index(record)
        return record

    def get(self, record_id: str) -> Optional[RecordT]:
        with self.lock:
            return self._records.get(record_id)

    def update(self, record_id: str, **changes: object) -> Optional[RecordT]:
        """Shallow-merge ``changes`` into the record and refresh ``updated_at``.

        ``id`` and ``created_at`` are never taken from the caller.
        """

        with self.lock:
            current = self._records.get(record_id)
            if current is None:
                return None
            updated = self._merge(current, changes)
            self._check_unique(updated)
            self._unindex(current)
            self._records[record_id] = updated
            self._index(updated)
            return updated

    def delete(self, record_id: str) -> bool:
        with self.lock:
            record = self._records.pop(record_id, None)
            if record is None:
                return False
            self._unindex(record)
            return True

    def list_all(self) -> List[RecordT]:
        with self.lock:
            return list(self._records.values())

    def filter(self, predicate: Callable[[RecordT], bool]) -> List[RecordT]:
        with self.lock:
            return [record for record in self._records.values() if predicate(record)]

    def _merge(self, current: RecordT, changes: Mapping[str, object]) -> RecordT:
        changes = {
            key: value
            for key, value in changes.items()
            if key not in self.IMMUTABLE_FIELDS and key != "updated_at"
        }
        protected = set(changes) & self.PROTECTED_FIELDS
        if protected:
            raise ValidationError(f"Cannot change {', '.join(sorted(protected))} on an existing {self.name}.")
        known = {f.name for f in fields(current)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown {self.name} fields: {', '.join(sorted(unknown))}")
        return replace(current, **changes, updated_at=self._clock())

    # Secondary index hooks; the base collection only has the primary map.
    def _check_unique(self, record: RecordT) -> None:
        return None

    def _index(self, record: RecordT) -> None:
        return None

    def _unindex(self, record: RecordT) -> None:
        return None


class UserCollection(Collection[User]):
    """Users keyed by id, with a secondary index from normalized email to id."""

    def __init__(self, name: str, clock: Clock) -> None:
        super().__init__(name, clock)
        self._email_index: Dict[str, str] = {}

    def get_by_email(self, email: str) -> Optional[User]:
        with self.lock:
            user_id = self._email_index.get(normalize_email(email))
            return self._records.get(user_id) if user_id else None

    def _check_unique(self, record: User) -> None:
        owner = self._email_index.get(record.email)
        if owner is not None and owner != record.id:
            raise ValidationError("An account with that email already exists.")

    def _index(self, record: User) -> None:
        self._email_index[record.email] = record.id

    def _unindex(self, record: User) -> None:
        if self._email_index.get(record.email) == record.id:
            del self._email_index[record.email]


class CartCollection(Collection[CartItem]):
    """Cart lines with at most one entry per (user, product) pair."""

    PROTECTED_FIELDS = frozenset({"user_id", "product_id"})

    def __init__(self, name: str, clock: Clock) -> None:
        super().__init__(name, clock)
        self._pair_index: Dict[Tuple[str, str], str] = {}

    def add(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        """Insert a cart line, replacing any existing line for the same pair."""

        now = self._clock()
        item = CartItem(
            id=generate_id(),
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
            created_at=now,
            updated_at=now,
        )
        with self.lock:
            existing_id = self._pair_index.get((user_id, product_id))
            if existing_id is not None:
                self.delete(existing_id)
            return self.create(item)

    def get_by_user_id(self, user_id: str) -> List[CartItem]:
        items = self.filter(lambda item: item.user_id == user_id)
        return sorted(items, key=lambda item: item.created_at)

    def get_item(self, user_id: str, product_id: str) -> Optional[CartItem]:
        with self.lock:
            item_id = self._pair_index.get((user_id, product_id))
            return self._records.get(item_id) if item_id else None

    def remove(self, user_id: str, product_id: str) -> bool:
        with self.lock:
            item_id = self._pair_index.get((user_id, product_id))
            if item_id is None:
                return False
            return self.delete(item_id)

    def clear_user(self, user_id: str) -> int:
        with self.lock:
            doomed = [item.id for item in self._records.values() if item.user_id == user_id]
            for item_id in doomed:
                self.delete(item_id)
            return len(doomed)

    def _check_unique(self, record: CartItem) -> None:
        owner = self._pair_index.get((record.user_id, record.product_id))
        if owner is not None and owner != record.id:
            raise ValidationError("That product is already in the cart.")

    def _index(self, record: CartItem) -> None:
        self._pair_index[(record.user_id, record.product_id)] = record.id

    def _unindex(self, record: CartItem) -> None:
        key = (record.user_id, record.product_id)
        if self._pair_index.get(key) == record.id:
            del self._pair_index[key]


class OrderCollection(Collection[Order]):
    """Orders. Line items and their derived totals are fixed at creation."""

    PROTECTED_FIELDS = frozenset({"user_id", "items", "total", "currency"})

    def _merge(self, current: Order, changes: Mapping[str, object]) -> Order:
        updated = super()._merge(current, changes)
        if updated.status != current.status and updated.status not in ORDER_TRANSITIONS[current.status]:
            raise ValidationError(
                f"Cannot move an order from {current.status.value} to {updated.status.value}."
            )
        return updated

    def get_by_user_id(self, user_id: str) -> List[Order]:
        orders = self.filter(lambda order: order.user_id == user_id)
        return sorted(orders, key=lambda order: order.created_at, reverse=True)


class SessionCollection(Collection[Session]):
    """Sessions, with a min-heap of ``(expires_at, id)`` for sweeping.

    Every insert lands in the heap, whoever makes it. Entries for sessions
    already gone are dropped when they reach the top.
    """

    def __init__(self, name: str, clock: Clock) -> None:
        super().__init__(name, clock)
        self._expiry_heap: List[Tuple[datetime, str]] = []

    def _index(self, record: Session) -> None:
        heapq.heappush(self._expiry_heap, (record.expires_at, record.id))

    def purge_expired(self, now: datetime) -> int:
        """Delete every session with ``expires_at <= now``; returns how many went."""

        removed = 0
        with self.lock:
            while self._expiry_heap and self._expiry_heap[0][0] <= now:
                _, session_id = heapq.heappop(self._expiry_heap)
                session = self._records.get(session_id)
                if session is not None and not session.is_active(now):
                    del self._records[session_id]
                    removed += 1
        return removed


# --------------------------------------------------------------------------------------
# Store
# --------------------------------------------------------------------------------------


OrderLine = Union[OrderItem, Mapping[str, object]]


class RecordStore:
    """Process-wide store built once by the application factory."""

    def __init__(self, clock: Clock = utcnow) -> None:
        self.clock = clock
        self.users = UserCollection("user", clock)
        self.products: Collection[Product] = Collection("product", clock)
        self.orders = OrderCollection("order", clock)
        self.cart_items = CartCollection("cart item", clock)
        self.sessions = SessionCollection("session", clock)
        self.seed_lock = threading.Lock()
        self.seeded = False

    # ---- users -------------------------------------------------------------------

    def create_user(self, name: str, email: str, password_hash: str, *, role: Role = Role.USER) -> User:
        """Insert a new user; the email must not already be bound to an account."""

        now = self.clock()
        user = User(
            id=generate_id(),
            name=(name or "").strip(),
            email=normalize_email(email),
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )
        return self.users.create(user)

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.users.get_by_email(email)

    def update_user(self, user_id: str, **changes: object) -> Optional[User]:
        return self.users.update(user_id, **changes)

    def delete_user(self, user_id: str) -> bool:
        """Remove the user record only; orders and cart lines are left as they are."""
        return self.users.delete(user_id)

    def list_users(self) -> List[User]:
        return sorted(self.users.list_all(), key=lambda user: user.created_at, reverse=True)

    # ---- products ----------------------------------------------------------------

    def create_product(self, **data: object) -> Product:
        """Insert a product; ``name`` and ``price`` are required."""

        values = _coerce_product_fields(data)
        if "name" not in values or "price" not in values:
            raise ValidationError("Product name and price are required.")
        now = self.clock()
        product = Product(
            id=generate_id(),
            name=str(values["name"]),
            description=str(values.get("description", "")),
            price=values["price"],  # type: ignore[arg-type]
            currency=str(values.get("currency", DEFAULT_CURRENCY)),
            category=str(values.get("category") or DEFAULT_CATEGORY),
            image=str(values.get("image", "")),
            rating=float(values.get("rating", 0.0)),  # type: ignore[arg-type]
            num_reviews=int(values.get("num_reviews", 0)),  # type: ignore[arg-type]
            count_in_stock=int(values.get("count_in_stock", 0)),  # type: ignore[arg-type]
            created_at=now,
            updated_at=now,
        )
        return self.products.create(product)

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    def update_product(self, product_id: str, **changes: object) -> Optional[Product]:
        """Apply only the supplied fields; returns ``None`` for an unknown id."""

        return self.products.update(product_id, **_coerce_product_fields(changes))

    def delete_product(self, product_id: str) -> bool:
        return self.products.delete(product_id)

    def list_products(self, *, category: Optional[str] = None, search: Optional[str] = None) -> List[Product]:
        """Return products, optionally narrowed by category and a free-text search."""

        category_key = (category or "").strip().lower()
        search_key = (search or "").strip().lower()

        def matches(product: Product) -> bool:
            if category_key and product.category.lower() != category_key:
                return False
            if search_key and search_key not in product.name.lower() and search_key not in product.description.lower():
                return False
            return True

        return sorted(self.products.filter(matches), key=lambda product: product.created_at)

    def list_categories(self) -> List[str]:
        return sorted({product.category for product in self.products.list_all() if product.category})

    # ---- cart --------------------------------------------------------------------

    def add_to_cart(self, user_id: str, product_id: str, quantity: int) -> CartItem:
        return self.cart_items.add(user_id, product_id, _as_int(quantity, "quantity"))

    def get_cart_by_user_id(self, user_id: str) -> List[CartItem]:
        return self.cart_items.get_by_user_id(user_id)

    def remove_from_cart(self, user_id: str, product_id: str) -> bool:
        return self.cart_items.remove(user_id, product_id)

    def clear_cart(self, user_id: str) -> int:
        return self.cart_items.clear_user(user_id)

    # ---- orders ------------------------------------------------------------------

    def create_order(
        self,
        user_id: str,
        items: Iterable[OrderLine],
        *,
        status: OrderStatus | str = OrderStatus.PENDING,
        currency: str = DEFAULT_CURRENCY,
    ) -> Order:
        """Insert an order snapshot; the user must exist at creation time."""

        lines = tuple(self._order_line(item) for item in items)
        with self.users.lock, self.orders.lock:
            if user_id not in self.users:
                raise NotFoundError("User not found.")
            now = self.clock()
            order = Order(
                id=generate_id(),
                user_id=user_id,
                items=lines,
                status=status,  # type: ignore[arg-type]
                total=sum((line.subtotal for line in lines), Decimal("0")),
                currency=currency,
                created_at=now,
                updated_at=now,
            )
            return self.orders.create(order)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.orders.get(order_id)

    def get_orders_by_user_id(self, user_id: str) -> List[Order]:
        return self.orders.get_by_user_id(user_id)

    def list_orders(self) -> List[Order]:
        return sorted(self.orders.list_all(), key=lambda order: order.created_at, reverse=True)

    def update_order(self, order_id: str, **changes: object) -> Optional[Order]:
        """Change an order's status along the allowed transitions.

        Cancelling goes through :meth:`cancel_order` so the stock comes back.
        """

        status = changes.get("status")
        if status is not None and status == OrderStatus.CANCELLED:
            with self.products.lock, self.orders.lock:
                if order_id not in self.orders:
                    return None
                if set(changes) - {"status"}:
                    raise ValidationError("Cancelling an order cannot change other fields.")
                return self.cancel_order(order_id)
        return self.orders.update(order_id, **changes)

    def checkout(self, user_id: str) -> Order:
        """Turn the user's cart into a pending order and take the stock.

        Prices are snapshotted onto the order lines. Either every step
        happens or none does.
        """

        with self.users.lock, self.products.lock, self.orders.lock, self.cart_items.lock:
            cart = self.cart_items.get_by_user_id(user_id)
            if not cart:
                raise ValidationError("Your cart is empty.")

            lines: List[OrderItem] = []
            stock_after: Dict[str, int] = {}
            currencies = set()
            for entry in cart:
                product = self.products.get(entry.product_id)
                if product is None:
                    raise NotFoundError("A product in your cart is no longer available.")
                if entry.quantity > product.count_in_stock:
                    raise ValidationError(
                        f"Only {product.count_in_stock} of {product.name} left in stock."
                    )
                currencies.add(product.currency)
                stock_after[product.id] = product.count_in_stock - entry.quantity
                lines.append(
                    OrderItem(
                        product_id=product.id,
                        name=product.name,
                        quantity=entry.quantity,
                        unit_price=product.price,
                    )
                )
            if len(currencies) > 1:
                raise ValidationError("All items in an order must share one currency.")

            order = self.create_order(user_id, lines, currency=currencies.pop())
            for product_id, remaining in stock_after.items():
                self.products.update(product_id, count_in_stock=remaining)
            self.cart_items.clear_user(user_id)

        logger.info("Order %s placed with %d line(s).", order.id, len(order.items))
        return order

    def cancel_order(self, order_id: str) -> Optional[Order]:
        """Cancel a pending order and return its stock to inventory."""

        with self.products.lock, self.orders.lock:
            order = self.orders.get(order_id)
            if order is None:
                raise NotFoundError("Order not found.")
            if order.status != OrderStatus.PENDING:
                raise ValidationError("Only pending orders can be cancelled.")
            for line in order.items:
                product = self.products.get(line.product_id)
                if product is None:
                    continue
                self.products.update(product.id, count_in_stock=product.count_in_stock + line.quantity)
            return self.orders.update(order_id, status=OrderStatus.CANCELLED)

    @staticmethod
    def _order_line(item: OrderLine) -> OrderItem:
        if isinstance(item, OrderItem):
            return item
        product_id = item.get("product_id")
        if not product_id:
            raise ValidationError("Every order line needs a product id.")
        return OrderItem(
            product_id=str(product_id),
            name=_as_text(item.get("name"), "name"),
            quantity=_as_int(item.get("quantity", 0), "quantity"),
            unit_price=_as_decimal(item.get("unit_price", 0), "unit_price"),
        )


# --------------------------------------------------------------------------------------
# Initialization and seeding
# --------------------------------------------------------------------------------------


def seed_store(store: RecordStore, hash_password: Callable[[str], str]) -> bool:
    """Load the admin account and the sample catalogue into a fresh store.

    Runs at most once per store; later calls return ``False`` and change nothing.
    """

    with store.seed_lock:
        if store.seeded:
            return False

        if store.get_user_by_email(ADMIN_ACCOUNT["email"]) is None:
            store.create_user(
                ADMIN_ACCOUNT["name"],
                ADMIN_ACCOUNT["email"],
                hash_password(ADMIN_ACCOUNT["password"]),
                role=Role.ADMIN,
            )
        for product in PRODUCT_CATALOG:
            store.create_product(**product)

        store.seeded = True

    logger.info(
        "Store seeded with admin %s and %d products.", ADMIN_ACCOUNT["email"], len(PRODUCT_CATALOG)
    )
    return True
