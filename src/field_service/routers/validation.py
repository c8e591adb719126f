"""Shared request validation helpers for the routers."""

from __future__ import annotations

import json
from datetime import date
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from field_service.core.exceptions import ServiceError

if TYPE_CHECKING:
    from fastapi import Request

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError(
            "INVALID_JSON",
            "Request body is not valid JSON",
            400,
            {},
        ) from exc

    if not isinstance(data, dict):
        raise ServiceError(
            "INVALID_JSON",
            "Request body must be a JSON object",
            400,
            {},
        )

    return data


async def parse_body(request: Request, model: type[ModelT]) -> ModelT:
    """Read the request body and validate it into model (an empty body is ``{}``)."""
    body = await request.body()
    data = {} if body == b"" else parse_json_body(body)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors = [
            {"loc": [str(part) for part in error["loc"]], "msg": error["msg"]}
            for error in exc.errors()
        ]
        raise ServiceError(
            "INVALID_PAYLOAD",
            "Request payload failed validation",
            400,
            {"errors": errors},
        ) from exc


def parse_int_query(request: Request, name: str, *, minimum: int) -> int | None:
    """Optional integer query parameter with a lower bound."""
    raw = request.query_params.get(name)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be an integer", 400, {}) from exc
    if value < minimum:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be >= {minimum}", 400, {})
    return value


def parse_bool_query(request: Request, name: str, *, default: bool) -> bool:
    """Optional true/false query parameter."""
    raw = request.query_params.get(name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in ("true", "1"):
        return True
    if lowered in ("false", "0"):
        return False
    raise ServiceError("INVALID_PAYLOAD", f"{name} must be true or false", 400, {})


def parse_date(value: str, name: str) -> date:
    """ISO calendar date from a path or query parameter."""
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ServiceError(
            "INVALID_PAYLOAD", f"{name} must be an ISO date (YYYY-MM-DD)", 400, {}
        ) from exc


def required_query(request: Request, name: str) -> str:
    """Non-empty query parameter that must be present."""
    value = request.query_params.get(name)
    if not value:
        raise ServiceError("INVALID_PAYLOAD", f"Missing required query parameter: {name}", 400, {})
    return value
