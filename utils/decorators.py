"""Authorization decorators for role-based access control."""
from functools import wraps

from flask import current_app, jsonify
from flask_login import current_user, login_required

from utils.audit_trail import record_system_event
from utils.errors import AuthorizationError


def roles_required(*roles):
    allowed = {r.lower() for r in roles}

    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapped(*args, **kwargs):
            if (current_user.role or "").lower() in allowed:
                return view_func(*args, **kwargs)

            current_app.logger.warning(
                "Unauthorized role access attempt",
                extra={"user_id": current_user.id, "role": current_user.role},
            )
            record_system_event(
                "UNAUTHORIZED_ACCESS",
                actor=current_user,
                details={"endpoint": view_func.__name__, "required_roles": sorted(allowed)},
            )
            error = AuthorizationError("You do not have access to this resource.")
            return jsonify(error.to_dict()), error.http_status

        return wrapped

    return decorator
