"""Application lifecycle and the job-side mutations that depend on it.

Every operation checks, in this order: the resource exists (``NotFound``),
the actor may act on it (``Denied``), the business rules hold
(``Conflict``). Only then is anything written or uploaded.
"""

from __future__ import annotations

import logging
from datetime import datetime

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from accounts.models import User
from resumes.assets import resume_assets

from .authorization import Action, ensure_allowed
from .exceptions import Conflict, Denied, InternalError, InvalidTransition, NotFound, translate_store_errors
from .ledger import StatusLedger
from .models import Job, JobApplication, JobStatus
from .ownership import resolve_application, resolve_company, resolve_job
from .transitions import StaleApplication, apply_transition, validate_status

logger = logging.getLogger(__name__)

EMPLOYER_FIELDS = ("status", "notes")
APPLICANT_FIELDS = ("cover_letter", "expected_salary", "available_from", "resume")


def _max_retries() -> int:
    return int(getattr(settings, "JOBBOARD_CONCURRENCY", {}).get("MAX_RETRIES", 3))


def _role_of_user(user_id):
    """Role of a stored user, ``None`` when there is no such user."""
    with translate_store_errors("load applicant"):
        try:
            return User.objects.filter(pk=user_id).values_list("role", flat=True).first()
        except (TypeError, ValueError):
            return None


def _as_bound(value, parse, field):
    if value is None or not isinstance(value, str):
        return value
    try:
        parsed = parse(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"Invalid {field}: {value!r}", code="invalid_date")
    return parsed


def _applied_at_filter(applied_from, applied_to):
    """Inclusive ``applied_at`` range; dates cover the whole day, datetimes are exact."""
    lookups = {}
    for bound, value in (("gte", applied_from), ("lte", applied_to)):
        value = _as_bound(value, lambda raw: parse_datetime(raw) or parse_date(raw), "applied date")
        if value is None:
            continue
        if isinstance(value, datetime):
            if timezone.is_naive(value):
                value = timezone.make_aware(value)
            lookups[f"applied_at__{bound}"] = value
        else:
            lookups[f"applied_at__date__{bound}"] = value
    return lookups


class ApplicationService:
    def __init__(self, assets=None, max_retries: int | None = None):
        self.assets = assets if assets is not None else resume_assets()
        self.max_retries = max_retries if max_retries is not None else _max_retries()

    # -----------------------------
    # Create
    # -----------------------------
    def create(
        self,
        actor,
        job_id,
        resume,
        *,
        applicant_id=None,
        cover_letter=None,
        expected_salary=None,
        available_from=None,
        notes=None,
    ) -> JobApplication:
        applicant_id = actor.id if applicant_id is None else applicant_id
        chain = resolve_job(job_id, applicant_id=applicant_id)
        applicant_role = actor.role
        if applicant_id != actor.id:
            applicant_role = _role_of_user(applicant_id)
            if applicant_role is None:
                raise NotFound("Applicant not found")
        ensure_allowed(actor, Action.CREATE_APPLICATION, chain)
        if applicant_role != User.Role.JOB_SEEKER:
            raise Denied("Applications can only be made for job seekers")

        if not chain.job.accepts_applications:
            raise Conflict("This job is no longer accepting applications")
        if JobApplication.objects.filter(job_id=chain.job.pk, applicant_id=applicant_id).exists():
            raise Conflict("You already applied for this job")

        ref = self.assets.upload(resume)
        try:
            with transaction.atomic():
                application = JobApplication.objects.create(
                    job=chain.job,
                    applicant_id=applicant_id,
                    resume_url=ref.url,
                    cover_letter=cover_letter,
                    expected_salary=expected_salary,
                    available_from=available_from,
                    notes=notes,
                )
                StatusLedger(application).record_creation(actor.id, at=application.applied_at)
        except IntegrityError as exc:
            # lost the race against a concurrent application for the same pair
            self.assets.release(ref.url)
            raise Conflict("You already applied for this job") from exc
        except DatabaseError as exc:
            self.assets.release(ref.url)
            logger.exception("Store error while creating application: job_id=%s", chain.job.pk)
            raise InternalError() from exc

        logger.info(
            "Application created: app_id=%s job_id=%s applicant=%s by=%s",
            application.pk,
            chain.job.pk,
            applicant_id,
            actor.id,
        )
        return application

    # -----------------------------
    # Read
    # -----------------------------
    def get(self, actor, application_id) -> JobApplication:
        chain = resolve_application(application_id)
        ensure_allowed(actor, Action.READ_APPLICATION, chain)
        return chain.application

    def history(self, actor, application_id) -> list[dict]:
        return StatusLedger(self.get(actor, application_id)).as_list()

    def list_for(self, actor, *, status=None, search=None, applied_from=None, applied_to=None):
        """Applications the actor may see, newest first.

        ``search`` matches the applicant's name or username and the job title,
        case-insensitively. ``applied_from``/``applied_to`` bound ``applied_at``
        and accept dates, datetimes or ISO strings.
        """
        ensure_allowed(actor, Action.LIST_APPLICATIONS)
        qs = JobApplication.objects.with_chain().visible_to(actor)
        if status:
            qs = qs.filter(status=validate_status(status))
        if search:
            qs = qs.filter(
                Q(applicant__first_name__icontains=search)
                | Q(applicant__last_name__icontains=search)
                | Q(applicant__username__icontains=search)
                | Q(job__title__icontains=search)
            )
        date_range = _applied_at_filter(applied_from, applied_to)
        if date_range:
            qs = qs.filter(**date_range)
        return qs

    # -----------------------------
    # Update
    # -----------------------------
    def update(self, actor, application_id, **changes) -> JobApplication:
        """Apply employer fields (status, notes) and/or applicant fields.

        Only the keys passed are touched; passing ``None`` clears a field
        (``status=None`` means "leave the status alone").
        """
        unknown = set(changes) - set(EMPLOYER_FIELDS) - set(APPLICANT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown application fields: {', '.join(sorted(unknown))}")

        actions = []
        if any(field in changes for field in EMPLOYER_FIELDS):
            actions.append(Action.UPDATE_APPLICATION_STATUS)
        if any(field in changes for field in APPLICANT_FIELDS):
            actions.append(Action.UPDATE_APPLICANT_FIELDS)

        if not actions:
            actions.append(Action.READ_APPLICATION)

        chain = resolve_application(application_id)
        for action in actions:
            ensure_allowed(actor, action, chain)
        if changes.get("status") is not None:
            validate_status(changes["status"])

        resume = changes.pop("resume", None)
        if resume is None:
            application, _old_url = self._write(actor, chain, actions, changes)
            return application

        written = {}

        def commit(ref):
            written["application"], old_url = self._write(actor, chain, actions, {**changes, "resume_url": ref.url})
            return old_url

        self.assets.replace(resume, commit)
        logger.info("Application resume replaced: app_id=%s by=%s", chain.application.pk, actor.id)
        return written["application"]

    def change_status(self, actor, application_id, new_status, **extra) -> JobApplication:
        return self.update(actor, application_id, status=new_status, **extra)

    def _write(self, actor, chain, actions, changes):
        """Conditional write with optimistic retry; returns (application, previous resume url)."""
        changes = dict(changes)
        new_status = changes.pop("status", None)
        attempt = 0
        while True:
            application = chain.application
            old_url = application.resume_url
            try:
                application = apply_transition(application, new_status, actor, changes=changes)
            except StaleApplication:
                attempt += 1
                if attempt >= self.max_retries:
                    logger.warning(
                        "Giving up on concurrent update: app_id=%s attempts=%s", application.pk, attempt
                    )
                    raise
                # re-read and re-check before trying again
                chain = resolve_application(application.pk)
                for action in actions:
                    ensure_allowed(actor, action, chain)
                continue
            if changes:
                logger.info(
                    "Application updated: app_id=%s fields=%s by=%s",
                    application.pk,
                    ",".join(sorted(changes)),
                    actor.id,
                )
            return application, old_url

    # -----------------------------
    # Delete
    # -----------------------------
    def delete(self, actor, application_id) -> None:
        chain = resolve_application(application_id)
        ensure_allowed(actor, Action.DELETE_APPLICATION, chain)

        resume_url = chain.application.resume_url
        with translate_store_errors("delete application"):
            JobApplication.objects.filter(pk=chain.application.pk).delete()
        logger.info("Application deleted: app_id=%s by=%s", chain.application.pk, actor.id)
        # record is gone either way; a failed file delete only leaves an orphan
        self.assets.release(resume_url)


JOB_FIELDS = (
    "title",
    "description",
    "location",
    "job_type",
    "experience_level",
    "min_salary",
    "max_salary",
    "status",
    "expires_at",
)


def _check_job_fields(fields, current=None):
    unknown = set(fields) - set(JOB_FIELDS)
    if unknown:
        raise TypeError(f"Unknown job fields: {', '.join(sorted(unknown))}")
    if "status" in fields and fields["status"] not in JobStatus.values:
        raise InvalidTransition(f"Unknown job status: {fields['status']!r}")

    min_salary = fields.get("min_salary", getattr(current, "min_salary", None))
    max_salary = fields.get("max_salary", getattr(current, "max_salary", None))
    if min_salary is not None and max_salary is not None and min_salary > max_salary:
        raise ValidationError("Minimum salary cannot be greater than maximum salary", code="salary_range")
    expires_at = fields.get("expires_at")
    if expires_at is not None and expires_at < timezone.now():
        raise ValidationError("Job expiration date must be in the future", code="expires_at")


class JobService:
    def __init__(self, assets=None):
        self.assets = assets if assets is not None else resume_assets()

    def create(self, actor, company_id, **fields) -> Job:
        chain = resolve_company(company_id)
        ensure_allowed(actor, Action.CREATE_JOB, chain)
        _check_job_fields(fields)
        with translate_store_errors("create job"):
            job = Job.objects.create(company=chain.company, posted_by_id=actor.id, **fields)
        logger.info("Job created: job_id=%s company_id=%s by=%s", job.pk, chain.company.pk, actor.id)
        return job

    # Job listings are public; reads take no actor.
    def get(self, job_id) -> Job:
        return resolve_job(job_id).job

    def list(self, *, search=None, status=None, job_type=None, experience_level=None, company_id=None):
        qs = Job.objects.select_related("company").recent()
        if status:
            if status not in JobStatus.values:
                raise InvalidTransition(f"Unknown job status: {status!r}")
            qs = qs.filter(status=status)
        if job_type:
            qs = qs.filter(job_type=job_type)
        if experience_level:
            qs = qs.filter(experience_level=experience_level)
        if company_id is not None:
            qs = qs.filter(company_id=company_id)
        if search:
            qs = qs.filter(
                Q(title__icontains=search) | Q(description__icontains=search) | Q(company__name__icontains=search)
            )
        return qs

    def update(self, actor, job_id, **fields) -> Job:
        chain = resolve_job(job_id)
        ensure_allowed(actor, Action.UPDATE_JOB, chain)
        _check_job_fields(fields, current=chain.job)
        job = chain.job
        for field, value in fields.items():
            setattr(job, field, value)
        if fields:
            with translate_store_errors("update job"):
                job.save(update_fields=list(fields))
        logger.info("Job updated: job_id=%s by=%s", job.pk, actor.id)
        return job

    def set_status(self, actor, job_id, status) -> Job:
        chain = resolve_job(job_id)
        ensure_allowed(actor, Action.UPDATE_JOB_STATUS, chain)
        if status not in JobStatus.values:
            raise InvalidTransition(f"Unknown job status: {status!r}")
        job = chain.job
        job.status = status
        with translate_store_errors("update job status"):
            job.save(update_fields=["status"])
        logger.info("Job status updated: job_id=%s status=%s by=%s", job.pk, status, actor.id)
        return job

    def delete(self, actor, job_id) -> None:
        chain = resolve_job(job_id)
        ensure_allowed(actor, Action.DELETE_JOB, chain)
        resume_urls = list(chain.job.applications.values_list("resume_url", flat=True))
        with translate_store_errors("delete job"):
            Job.objects.filter(pk=chain.job.pk).delete()
        logger.info("Job deleted: job_id=%s applications=%s by=%s", chain.job.pk, len(resume_urls), actor.id)
        for url in resume_urls:
            self.assets.release(url)
