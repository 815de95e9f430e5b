"""Public-facing Flask JSON API for the T-Tech storefront."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from functools import wraps
from typing import Any, Dict, Mapping, Optional

import click
from flask import Flask, current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.wrappers import Response

from auth import AuthService
from database import RecordStore, seed_store
from errors import AuthError, FormatError, NotFoundError, StoreError, ValidationError
from models import PublicUser, Role
from security import BCRYPT_ROUNDS, PasswordHasher
from sessions import SessionManager

DEFAULT_CONFIG: Dict[str, Any] = {
    "SESSION_LIFETIME_DAYS": 7,
    "BCRYPT_ROUNDS": BCRYPT_ROUNDS,
    "AUTH_COOKIE_NAME": "session_id",
    "AUTH_COOKIE_SECURE": False,
    "SEED_DATA": True,
}


def create_app(store: Optional[RecordStore] = None, config: Optional[Mapping[str, Any]] = None) -> Flask:
    """Build the application and the store it serves.

    The store lives for as long as the app does. Pass one in to share it or
    to control its clock in tests.
    """

    app = Flask(__name__)
    app.config.from_mapping(DEFAULT_CONFIG)
    if config:
        app.config.from_mapping(config)
    app.config.from_prefixed_env()

    store = store if store is not None else RecordStore()
    hasher = PasswordHasher(rounds=int(app.config["BCRYPT_ROUNDS"]))
    sessions = SessionManager(store, lifetime=timedelta(days=float(app.config["SESSION_LIFETIME_DAYS"])))
    app.extensions["store"] = store
    app.extensions["sessions"] = sessions
    app.extensions["auth"] = AuthService(store, hasher, sessions)

    if app.config["SEED_DATA"]:
        seed_store(store, hasher.hash)

    _register_error_handlers(app)
    _register_routes(app)

    from admin_app import admin_bp

    app.register_blueprint(admin_bp)

    @app.cli.command("cleanup-sessions")
    def cleanup_sessions_command() -> None:
        """Purge expired sessions from the store."""
        removed = sessions.cleanup_expired()
        click.echo(f"Removed {removed} expired session(s); {sessions.active_count()} remain.")

    return app


# --------------------------------------------------------------------------------------
# Request helpers
# --------------------------------------------------------------------------------------


def _store() -> RecordStore:
    return current_app.extensions["store"]


def _auth() -> AuthService:
    return current_app.extensions["auth"]


def _success(data: object = None, status: int = 200, message: Optional[str] = None) -> tuple[Response, int]:
    payload: Dict[str, object] = {"success": True}
    if message:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    return jsonify(payload), status


def _json_body() -> Dict[str, Any]:
    """Return the request body as a dict, rejecting anything else."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    return body


def _session_token() -> Optional[str]:
    """Read the session token from the bearer header, falling back to the cookie."""
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get(current_app.config["AUTH_COOKIE_NAME"]) or None


def _current_user() -> Optional[PublicUser]:
    """Return the signed-in user for this request, resolving the token once."""
    if "current_user" not in g:
        g.current_user = _auth().current_user(_session_token())
    return g.current_user


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if _current_user() is None:
            raise AuthError("Sign in to continue.")
        return view(*args, **kwargs)

    return wrapped


def _cart_snapshot(user_id: str) -> Dict[str, object]:
    """Return hydrated cart lines with pricing."""
    store = _store()
    lines = []
    total = Decimal("0")
    for item in store.get_cart_by_user_id(user_id):
        product = store.get_product(item.product_id)
        if product is None:
            continue
        subtotal = product.price * item.quantity
        total += subtotal
        lines.append({**item.to_dict(), "product": product.to_dict(), "subtotal": str(subtotal)})
    return {"items": lines, "total": str(total), "count": sum(line["quantity"] for line in lines)}


# --------------------------------------------------------------------------------------
# Error handling
# --------------------------------------------------------------------------------------


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(StoreError)
    def handle_store_error(exc: StoreError):
        message = exc.default_message if isinstance(exc, FormatError) else exc.message
        return jsonify({"success": False, "error": message}), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"success": False, "error": exc.name}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        app.logger.exception("Unhandled error while serving %s %s.", request.method, request.path)
        return jsonify({"success": False, "error": "Internal server error"}), 500


# --------------------------------------------------------------------------------------
# Routes
# --------------------------------------------------------------------------------------


def _register_routes(app: Flask) -> None:
    @app.route("/")
    def index():
        """Health check."""
        return _success({"status": "ok", "products": len(_store().products)})

    @app.post("/api/auth/register")
    def register():
        """Register a new user account."""
        body = _json_body()
        name = body.get("name")
        email = body.get("email")
        password = body.get("password")
        if not name or not email or not password:
            raise ValidationError("Name, email and password are required.")
        user = _auth().register(str(name), str(email), str(password))
        return _success(user.to_dict(), status=201, message="Registration successful")

    @app.post("/api/auth/login")
    def login():
        """Authenticate an existing user and open a session."""
        body = _json_body()
        email = body.get("email")
        password = body.get("password")
        if not email or not password:
            raise ValidationError("Email and password are required.")

        token, user = _auth().login(str(email), str(password))
        response, status = _success({"token": token, "user": user.to_dict()}, message="Login successful")
        lifetime = _auth().sessions.lifetime
        response.set_cookie(
            app.config["AUTH_COOKIE_NAME"],
            token,
            max_age=int(lifetime.total_seconds()),
            httponly=True,
            samesite="Lax",
            secure=bool(app.config["AUTH_COOKIE_SECURE"]),
        )
        return response, status

    @app.post("/api/auth/logout")
    def logout():
        """Close the current session, if any."""
        token = _session_token()
        if token:
            _auth().logout(token)
        response, status = _success(message="Logged out")
        response.delete_cookie(app.config["AUTH_COOKIE_NAME"])
        return response, status

    @app.get("/api/auth/me")
    @login_required
    def me():
        return _success(_current_user().to_dict())

    @app.get("/api/products")
    def products():
        """Product catalogue, optionally filtered by category or search text."""
        items = _store().list_products(
            category=request.args.get("category"),
            search=request.args.get("search"),
        )
        return _success([product.to_dict() for product in items])

    @app.get("/api/products/<product_id>")
    def product_detail(product_id: str):
        product = _store().get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found.")
        return _success(product.to_dict())

    @app.get("/api/categories")
    def categories():
        return _success(_store().list_categories())

    @app.get("/api/cart")
    @login_required
    def cart():
        """Display the current basket with totals."""
        return _success(_cart_snapshot(_current_user().id))

    @app.post("/api/cart")
    @login_required
    def add_to_cart():
        """Put a product in the cart, replacing any quantity already there."""
        body = _json_body()
        product_id = body.get("productId")
        if not product_id or not isinstance(product_id, str):
            raise ValidationError("productId is required.")
        product = _store().get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found.")

        quantity = body.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("Please enter a whole number for quantity.")
        if quantity <= 0:
            raise ValidationError("Quantity must be at least one.")
        if quantity > product.count_in_stock:
            raise ValidationError(
                f"Only {product.count_in_stock} unit{'s' if product.count_in_stock != 1 else ''} "
                f"of {product.name} are available."
            )

        item = _store().add_to_cart(_current_user().id, product.id, quantity)
        return _success(item.to_dict(), status=201, message="Updated your cart.")

    @app.delete("/api/cart/<product_id>")
    @login_required
    def remove_from_cart(product_id: str):
        if not _store().remove_from_cart(_current_user().id, product_id):
            raise NotFoundError("That product was not in your cart.")
        return _success(message="Removed the product from your cart.")

    @app.delete("/api/cart")
    @login_required
    def clear_cart():
        removed = _store().clear_cart(_current_user().id)
        return _success({"removed": removed}, message="Cleared your cart.")

    @app.get("/api/orders")
    @login_required
    def orders_history():
        """The signed-in user's orders, newest first."""
        orders = _store().get_orders_by_user_id(_current_user().id)
        return _success([order.to_dict() for order in orders])

    @app.post("/api/orders")
    @login_required
    def checkout():
        """Turn the cart into a pending order."""
        order = _store().checkout(_current_user().id)
        return _success(order.to_dict(), status=201, message="Order received.")

    @app.get("/api/orders/<order_id>")
    @login_required
    def order_detail(order_id: str):
        user = _current_user()
        order = _store().get_order(order_id)
        if order is None or (order.user_id != user.id and user.role != Role.ADMIN):
            raise NotFoundError("Order not found.")
        return _success(order.to_dict())

    @app.post("/api/orders/<order_id>/cancel")
    @login_required
    def cancel_order(order_id: str):
        """Allow a user to cancel their pending order."""
        order = _store().get_order(order_id)
        if order is None or order.user_id != _current_user().id:
            raise NotFoundError("Order not found.")
        cancelled = _store().cancel_order(order_id)
        return _success(cancelled.to_dict(), message="Order cancelled and stock returned.")


if __name__ == "__main__":
    create_app().run(debug=True)
