"""
DRF exception handler that renders application errors.

Registered as REST_FRAMEWORK["EXCEPTION_HANDLER"]. Errors derived from
BaseApplicationError are rendered with ``to_dict()`` and the status
declared on the exception class; everything else falls through to DRF.
"""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def application_exception_handler(exc, context):
    """Translate BaseApplicationError subclasses into JSON responses."""
    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        logger.info(
            f"Application error in {view.__class__.__name__ if view else 'view'}: {exc}",
            extra={
                "error_code": exc.error_code,
                "status_code": exc.http_status,
            },
        )
        return Response(exc.to_dict(), status=exc.http_status)

    return exception_handler(exc, context)
