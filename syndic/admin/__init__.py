from __future__ import annotations

from flask import Blueprint

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")
onboarding_bp = Blueprint("onboarding", __name__, url_prefix="/onboarding")

from syndic.admin import routes  # noqa: E402,F401
