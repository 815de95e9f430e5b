"""Admin-only JSON endpoints for managing customers, products and orders."""

from __future__ import annotations

from functools import wraps
from typing import Any, Dict, Mapping

from flask import Blueprint, current_app

from app import _auth, _current_user, _json_body, _store, _success
from errors import NotFoundError, ValidationError
from models import PRODUCT_FIELDS, OrderStatus, Role

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def admin_required(view):
    """Anyone who is not a signed-in admin gets a 403."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        _auth().require_role(_current_user(), Role.ADMIN)
        return view(*args, **kwargs)

    return wrapped


def _product_payload(body: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate wire field names into store field names."""
    unknown = set(body) - set(PRODUCT_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")
    return {PRODUCT_FIELDS[key]: value for key, value in body.items()}


@admin_bp.get("/users")
@admin_required
def list_users():
    users = _auth().list_users(_current_user())
    return _success({"users": [user.to_dict() for user in users], "total": len(users)})


@admin_bp.delete("/users/<user_id>")
@admin_required
def delete_user(user_id: str):
    """Delete an account; its orders are kept for the books."""
    _auth().delete_user(_current_user(), user_id)
    return _success(message="User removed.")


@admin_bp.post("/products")
@admin_required
def create_product():
    product = _store().create_product(**_product_payload(_json_body()))
    current_app.logger.info("Admin %s created product %s.", _current_user().id, product.id)
    return _success(product.to_dict(), status=201, message="Product created.")


@admin_bp.put("/products/<product_id>")
@admin_required
def update_product(product_id: str):
    """Change only the supplied product fields."""
    product = _store().update_product(product_id, **_product_payload(_json_body()))
    if product is None:
        raise NotFoundError("Product not found.")
    return _success(product.to_dict(), message="Product updated.")


@admin_bp.delete("/products/<product_id>")
@admin_required
def delete_product(product_id: str):
    if not _store().delete_product(product_id):
        raise NotFoundError("Product not found.")
    current_app.logger.info("Admin %s removed product %s.", _current_user().id, product_id)
    return _success(message="Product removed.")


@admin_bp.get("/orders")
@admin_required
def list_orders():
    orders = _store().list_orders()
    return _success({"orders": [order.to_dict() for order in orders], "total": len(orders)})


@admin_bp.put("/orders/<order_id>")
@admin_required
def update_order(order_id: str):
    """Move an order through its fulfilment states."""
    body = _json_body()
    if set(body) != {"status"}:
        raise ValidationError("Only the order status can be changed.")
    try:
        status = OrderStatus(body["status"])
    except ValueError as exc:
        raise ValidationError("Unknown order status.") from exc

    order = _store().update_order(order_id, status=status)
    if order is None:
        raise NotFoundError("Order not found.")
    return _success(order.to_dict(), message="Order updated.")
