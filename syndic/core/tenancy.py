from __future__ import annotations

import structlog
from flask import abort, g
from flask_login import current_user

from syndic.core.errors import AuthenticationError, PermissionDeniedError
from syndic.core.extensions import db
from syndic.core.models import Profile, ProfileResidence, Residence, User, UserRole


def resolve_residence_id(user_id: int, role: UserRole | str | None = None) -> int | None:
    """Map a user to the residence it acts on.

    Syndics and guards are attached through the residence row itself, every
    other role through its first profile/residence link.
    """
    if role is None:
        profile = db.session.get(Profile, user_id)
        if profile is None:
            return None
        role = profile.role
    role = UserRole(role)

    if role == UserRole.SYNDIC:
        residence = Residence.query.filter_by(syndic_user_id=user_id).first()
        return residence.id if residence else None
    if role == UserRole.GUARD:
        residence = Residence.query.filter_by(guard_user_id=user_id).order_by(Residence.id.asc()).first()
        return residence.id if residence else None

    link = ProfileResidence.query.filter_by(profile_id=user_id).order_by(ProfileResidence.id.asc()).first()
    return link.residence_id if link else None


def bind_tenant(user: User) -> None:
    profile = db.session.get(Profile, user.id)
    if profile is None:
        abort(403)
    residence_id = resolve_residence_id(user.id, profile.role)
    g.user = user
    g.profile = profile
    g.residence = db.session.get(Residence, residence_id) if residence_id else None
    structlog.contextvars.bind_contextvars(user_id=user.id, residence_id=residence_id)


def load_tenant_context() -> None:
    structlog.contextvars.clear_contextvars()
    g.user = None
    g.profile = None
    g.residence = None
    if not current_user.is_authenticated:
        return
    bind_tenant(current_user)


def current_profile() -> Profile:
    profile = getattr(g, "profile", None)
    if profile is None:
        raise AuthenticationError("Unauthorized")
    return profile


def current_residence() -> Residence:
    residence = getattr(g, "residence", None)
    if residence is None:
        raise PermissionDeniedError("No residence found for this user")
    return residence


def residence_id() -> int:
    return current_residence().id


def ensure_role(*roles: UserRole, message: str = "Permission denied") -> Profile:
    profile = current_profile()
    if profile.role not in roles:
        raise PermissionDeniedError(message)
    return profile
