"""JSON envelope shared by the mobile API and the session-backed JSON endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from syndic.core.errors import status_for
from syndic.core.extensions import db
from syndic.core.logging import get_logger

log = get_logger(__name__)


def jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(item) for item in value]
    return value


def ok(data: Any = None, status: int = 200, **extra: Any):
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = jsonable(data)
    body.update(jsonable(extra))
    return jsonify(body), status


def error_response(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def json_payload() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {key: value for key, value in request.form.items()}
    if not isinstance(payload, dict):
        return {}
    return payload


def register_json_errors(bp: Blueprint) -> None:
    @bp.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        messages = {401: "Unauthorized", 403: "Forbidden", 404: "Not found"}
        return error_response(messages.get(exc.code or 500, exc.description or exc.name), exc.code or 500)

    @bp.errorhandler(ValueError)
    def _business_error(exc: ValueError):
        db.session.rollback()
        status = status_for(exc)
        log.info("api_request_rejected", path=request.path, status=status, error=str(exc))
        return error_response(str(exc), status)

    @bp.errorhandler(Exception)
    def _unexpected_error(exc: Exception):
        db.session.rollback()
        log.exception("api_request_crashed", path=request.path)
        return error_response(str(exc) or "Internal server error", 500)
