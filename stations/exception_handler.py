"""
DRF exception handler for the station API.

Station endpoints answer with ``{"success": bool, "message": str, ...}``.
Framework errors (authentication, permission, validation, parse errors) are
rewritten into the same envelope:

{
    "success": false,
    "message": "Human-readable error message",
    "error": "Human-readable error message",
    // field-level errors from serializers
    "errors": { "field_name": ["..."] }
}

Unhandled exceptions are logged and turned into a 500 with the same shape
instead of Django's HTML error page.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


def _flatten(errors) -> str:
    messages = []
    if isinstance(errors, dict):
        for field, msgs in errors.items():
            if isinstance(msgs, (list, tuple)):
                messages.extend(f"{field}: {msg}" for msg in msgs)
            else:
                messages.append(f"{field}: {msgs}")
    elif isinstance(errors, (list, tuple)):
        messages.extend(str(e) for e in errors)
    return "; ".join(messages)


def custom_exception_handler(exc, context):
    response = drf_exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception(
            f"Unhandled error in {view.__class__.__name__ if view else 'view'}: {exc}"
        )
        return Response(
            {
                "success": False,
                "message": "Internal server error.",
                "error": "Internal server error.",
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    data = response.data

    # Auth / permission / throttle / parse errors
    if isinstance(data, dict) and "detail" in data:
        message = str(data["detail"])
        response.data = {"success": False, "message": message, "error": message}

    # Serializer validation errors
    elif isinstance(data, dict) and "success" not in data:
        message = _flatten(data) or "Validation error"
        response.data = {
            "success": False,
            "message": message,
            "error": message,
            "errors": data,
        }

    elif isinstance(data, list):
        message = _flatten(data) or "Validation error"
        response.data = {"success": False, "message": message, "error": message}

    return response
