"""Status changes on an application, written together with their history."""

from __future__ import annotations

import logging

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .exceptions import Conflict, InternalError, InvalidTransition, translate_store_errors
from .ledger import StatusLedger
from .models import ApplicationStatus, JobApplication

logger = logging.getLogger(__name__)


class StaleApplication(Conflict):
    default_message = "Application was modified concurrently, please retry"


def validate_status(value) -> str:
    if value not in ApplicationStatus.values:
        raise InvalidTransition(f"Unknown application status: {value!r}")
    return value


def _version_moved(application) -> bool:
    with translate_store_errors("check application version"):
        return not JobApplication.objects.filter(pk=application.pk, version=application.version).exists()


def apply_transition(application: JobApplication, new_status, actor, *, changes=None, now=None) -> JobApplication:
    """Write ``changes`` and, if it differs from the current one, ``new_status``.

    ``new_status=None`` leaves the status alone. When the status really
    changes, ``responded_at`` is stamped and one history row is appended in
    the same transaction as the row update. The update only matches the
    version that was read, so a concurrent writer turns this call into
    ``StaleApplication`` instead of a lost update.
    """
    changes = dict(changes or {})
    previous = application.status
    if new_status is not None:
        validate_status(new_status)
    status_changed = new_status is not None and new_status != previous

    now = now or timezone.now()
    if status_changed:
        changes["status"] = new_status
        changes["responded_at"] = now
    if not changes:
        return application

    try:
        with translate_store_errors("apply transition"), transaction.atomic():
            updated = JobApplication.objects.filter(pk=application.pk, version=application.version).update(
                version=F("version") + 1, **changes
            )
            if not updated:
                raise StaleApplication()
            if status_changed:
                StatusLedger(application).append_if_changed(new_status, previous, actor.id, at=now)
    except IntegrityError as exc:
        # every committed history append also bumps the version
        if _version_moved(application):
            raise StaleApplication() from exc
        logger.exception("Integrity error while applying transition: app_id=%s", application.pk)
        raise InternalError() from exc

    for field, value in changes.items():
        setattr(application, field, value)
    application.version += 1
    if status_changed:
        logger.info(
            "Application status changed: app_id=%s %s -> %s by=%s", application.pk, previous, new_status, actor.id
        )
    return application
