# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def load_optional_user() -> None:
    """
    Resolve the bearer token if one is sent, without requiring it.

    Sets g.current_user to the User or None. Used by routes open to guests
    (checkout) that still attribute actions to a logged-in caller.
    """
    token = _bearer_token()
    g.current_user = session_service.validate_session(token) if token else None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user. Returns 401 if the header is missing, the token is
    invalid/expired/revoked, or the user is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the authenticated user to hold one of `roles`.

    Must be stacked below @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401

            if user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
