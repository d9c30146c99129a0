from __future__ import annotations

from flask import Blueprint

community_bp = Blueprint("community", __name__, url_prefix="/community")

from syndic.community import routes  # noqa: E402,F401
