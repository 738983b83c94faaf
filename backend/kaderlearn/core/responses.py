"""
Response envelope and numeric helpers shared by routers and services.

Every endpoint answers with ``{"error", "code", "message", "data"}``.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def envelope(code: str, message: str, data: Any = None, error: bool = False) -> dict:
    return {
        "error": error,
        "code": code,
        "message": message,
        "data": jsonable_encoder(data),
    }


def success_response(
    code: str,
    message: str,
    data: Any = None,
    status_code: int = 200,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope(code, message, data))


def error_response(
    code: str,
    message: str,
    status_code: int,
    data: Any = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=envelope(code, message, data, error=True),
    )


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a person would: 0.5 always goes up."""
    exponent = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def percent(part: int, whole: int) -> int:
    """Integer percentage of ``part`` in ``whole``; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return int(round_half_up(part * 100 / whole))


def score(correct: int, total: int, digits: Optional[int] = None) -> float:
    """Quiz score on 0..100; 0 when there are no questions."""
    if not total:
        return 0.0
    raw = correct * 100 / total
    return raw if digits is None else round_half_up(raw, digits)
