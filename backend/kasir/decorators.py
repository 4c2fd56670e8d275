# Overview: Request decorators for API routes: authentication, roles, and error mapping.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service
from .services.transaction_service import InsufficientPaymentError
from .validation import ValidationError, NotFoundError, ConflictError, DomainError


def require_auth(f):
    """
    Require a bearer token and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.tenant_id: The tenant captured by the session (never from client input)
    - g.session_context: The full SessionContext object
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "message": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"success": False, "message": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.tenant_id = context.tenant_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require one of the given roles. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"success": False, "message": "Authentication required"}), 401

            if user.role not in roles:
                return jsonify({
                    "success": False,
                    "message": "Permission denied",
                    "required_role": list(roles),
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def handle_service_errors(action: str):
    """
    Map service-layer errors to JSON responses.

    ValidationError -> 400 (with field errors)
    InsufficientPaymentError -> 400 (with minimumRequired)
    DomainError -> 400
    NotFoundError -> 404
    ConflictError -> 409
    anything else -> logged, 500 with no internal detail
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"success": False, "message": str(e), "errors": e.errors}), 400
            except InsufficientPaymentError as e:
                return jsonify({
                    "success": False,
                    "message": str(e),
                    "minimumRequired": e.minimum_required,
                }), 400
            except DomainError as e:
                return jsonify({"success": False, "message": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"success": False, "message": str(e)}), 404
            except ConflictError as e:
                return jsonify({"success": False, "message": str(e)}), 409
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"success": False, "message": "Internal server error"}), 500
        return decorated_function
    return decorator


def get_product_cache():
    """The app's ProductCache, or None when the app was built without one."""
    return current_app.extensions.get("product_cache")
