# Overview: Request decorators for API routes: bearer authentication and role gates.

from functools import wraps
from flask import request, jsonify, g

from .services import token_service
from .errors import AuthorizationError
from .services.authorization_service import Caller, authorize, ACTION_POLICIES


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "caller")


def current_caller() -> Caller:
    """The acting user for this request, passed explicitly into services."""
    return g.caller


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User row
    - g.caller: Caller value passed to every service call

    Returns 401 if:
    - No Authorization header
    - Unknown or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        user = token_service.resolve_token(token)

        if user is None:
            return jsonify({"error": "Invalid or revoked token"}), 401

        g.current_user = user
        g.caller = Caller.from_user(user)

        return f(*args, **kwargs)

    return decorated_function


def require_action(action: str):
    """
    Gate a collection-level route on an action that needs no loaded
    transaction (e.g. admin-only management endpoints).

    Per-transaction checks happen inside the services, after the row is
    loaded.
    """
    if action not in ACTION_POLICIES:
        raise ValueError(f"Unknown action: {action}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                authorize(g.caller, action)
            except AuthorizationError as e:
                return jsonify(e.to_dict()), e.status_code

            return f(*args, **kwargs)

        return decorated_function

    return decorator
