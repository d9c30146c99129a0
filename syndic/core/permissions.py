from __future__ import annotations

from functools import wraps

from flask import abort, g

from syndic.core.models import UserRole


def require_profile(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "profile", None) is None:
            abort(401)
        return fn(*args, **kwargs)

    return wrapper


def require_residence(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "profile", None) is None:
            abort(401)
        if getattr(g, "residence", None) is None:
            abort(403)
        return fn(*args, **kwargs)

    return wrapper


def require_role(*roles: UserRole | str):
    allowed = {UserRole(role) for role in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            profile = getattr(g, "profile", None)
            if profile is None:
                abort(401)
            if profile.role not in allowed:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
