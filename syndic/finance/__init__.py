from __future__ import annotations

from flask import Blueprint

finance_bp = Blueprint("finance", __name__, url_prefix="/finance")
finance_api_bp = Blueprint("finance_api", __name__, url_prefix="/api")

from syndic.finance import api, routes  # noqa: E402,F401
