"""Append-only status history of an application."""

from __future__ import annotations

from django.db.models import Max
from django.utils import timezone

from .models import ApplicationStatus, ApplicationStatusEvent


class StatusLedger:
    """Ordered log of status changes for one application.

    The only writes are ``record_creation`` and ``append_if_changed``; both
    insert a new row. Callers that change ``application.status`` must append
    in the same database transaction (see ``jobs.transitions``).
    """

    def __init__(self, application):
        self.application = application

    def _events(self):
        return ApplicationStatusEvent.objects.filter(application_id=self.application.pk)

    def entries(self) -> list[ApplicationStatusEvent]:
        return list(self._events().order_by("sequence"))

    def as_list(self) -> list[dict]:
        return [event.as_dict() for event in self.entries()]

    def last(self) -> ApplicationStatusEvent | None:
        return self._events().order_by("-sequence").first()

    def __len__(self) -> int:
        return self._events().count()

    def is_consistent(self) -> bool:
        last = self.last()
        return last is None or last.status == self.application.status

    def record_creation(self, changed_by_id, at=None) -> ApplicationStatusEvent:
        return ApplicationStatusEvent.objects.create(
            application_id=self.application.pk,
            sequence=1,
            status=ApplicationStatus.PENDING,
            previous_status=None,
            changed_by_id=changed_by_id,
            changed_at=at or timezone.now(),
        )

    def append_if_changed(self, new_status, previous_status, changed_by_id, at=None) -> ApplicationStatusEvent | None:
        if new_status == previous_status:
            return None
        current = self._events().aggregate(top=Max("sequence"))["top"] or 0
        return ApplicationStatusEvent.objects.create(
            application_id=self.application.pk,
            sequence=current + 1,
            status=new_status,
            previous_status=previous_status,
            changed_by_id=changed_by_id,
            changed_at=at or timezone.now(),
        )
