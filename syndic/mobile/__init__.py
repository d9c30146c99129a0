from __future__ import annotations

from flask import Blueprint

from syndic.core.api import register_json_errors

mobile_bp = Blueprint("mobile", __name__, url_prefix="/api/mobile")
register_json_errors(mobile_bp)


@mobile_bp.after_request
def _cors_headers(response):
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    return response


from syndic.mobile import auth, routes  # noqa: E402,F401
