"""API error types and the DRF exception handler.

Every error leaving the API is rendered as ``{"error": "<message>"}``.
"""

import logging
from typing import Any

from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ParseError
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class TaskNotFound(NotFound):
    default_detail = "Task not found"
    default_code = "task_not_found"


class PersistenceError(APIException):
    """Raised by the store when the database call fails.

    The detail is the generic operation message; driver text stays in the logs.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"
    default_code = "persistence_error"


def first_message(detail: Any, default: str = "Invalid request") -> str:
    """Reduce a DRF error detail (str, list or field dict) to a single message."""
    if isinstance(detail, dict):
        if not detail:
            return default
        return first_message(next(iter(detail.values())), default)
    if isinstance(detail, (list, tuple)):
        if not detail:
            return default
        return first_message(detail[0], default)
    return str(detail)


def api_exception_handler(exc, context):
    if isinstance(exc, ParseError):
        # parser text names internals of the JSON decoder
        return Response({"error": "Invalid JSON payload"}, status=status.HTTP_400_BAD_REQUEST)

    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", type(view).__name__ if view else "view")
        return Response(
            {"error": "Internal server error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    response.data = {"error": first_message(response.data)}
    return response
