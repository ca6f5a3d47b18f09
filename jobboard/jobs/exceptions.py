"""Errors raised by the application lifecycle core.

Each error carries an HTTP-ish ``status_code`` so whatever transport sits in
front of the core can map it without inspecting the message. ``NotFound`` and
``Denied`` also subclass Django's own 404/403 exceptions, so Django's default
handlers already do the right thing with them.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from django.core.exceptions import PermissionDenied
from django.db import DatabaseError, IntegrityError
from django.http import Http404

logger = logging.getLogger(__name__)


class LifecycleError(Exception):
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"success": False, "message": self.message}


class NotFound(LifecycleError, Http404):
    status_code = 404
    default_message = "Not found"


class Denied(LifecycleError, PermissionDenied):
    status_code = 403
    default_message = "You do not have permission to do this action"

    @property
    def reason(self) -> str:
        return self.message


class Conflict(LifecycleError):
    status_code = 409
    default_message = "Conflict"


class InvalidTransition(LifecycleError):
    status_code = 400
    default_message = "Invalid status"


class AssetFailure(LifecycleError):
    status_code = 502
    default_message = "File storage error"


class InternalError(LifecycleError):
    status_code = 500
    default_message = "Internal error"


@contextmanager
def translate_store_errors(operation: str):
    """Hide raw database errors behind ``InternalError``.

    ``IntegrityError`` is left alone so callers can turn unique-key
    violations into ``Conflict`` themselves.
    """
    try:
        yield
    except IntegrityError:
        raise
    except DatabaseError as exc:
        logger.exception("Store error during %s", operation)
        raise InternalError() from exc
