"""Uniform JSON error bodies for the API."""
from __future__ import annotations

from typing import Any, Dict, Optional

from django.http import Http404
from rest_framework import exceptions
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

_CODES: Dict[type, str] = {
    exceptions.ValidationError: "validation_error",
    exceptions.ParseError: "validation_error",
    exceptions.NotFound: "not_found",
    exceptions.MethodNotAllowed: "method_not_allowed",
    exceptions.UnsupportedMediaType: "unsupported_media_type",
}


def _error_code(exc: Exception) -> str:
    if isinstance(exc, Http404):
        return "not_found"
    for exc_type, code in _CODES.items():
        if isinstance(exc, exc_type):
            return code
    return getattr(exc, "default_code", "error")


def exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    """Render every handled error as ``{"code": ..., "detail": ...}``."""

    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(data, dict) and set(data) == {"detail"}:
        detail: Any = data["detail"]
    else:
        detail = data
    response.data = {"code": _error_code(exc), "detail": detail}
    return response
