from django.conf import settings
from django.db import models
from django.utils import timezone

from accounts.models import User
from companies.models import Company


class JobType(models.TextChoices):
    FULL_TIME = "full_time", "Full-time"
    PART_TIME = "part_time", "Part-time"
    CONTRACT = "contract", "Contract"
    INTERN = "intern", "Internship"
    REMOTE = "remote", "Remote"


class ExperienceLevel(models.TextChoices):
    ENTRY = "entry", "Entry"
    MID = "mid", "Mid"
    SENIOR = "senior", "Senior"
    LEAD = "lead", "Lead"


class JobStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    OPEN = "OPEN", "Open"
    CLOSED = "CLOSED", "Closed"
    FILLED = "FILLED", "Filled"


class ApplicationStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    REVIEWING = "REVIEWING", "Reviewing"
    ACCEPTED = "ACCEPTED", "Accepted"
    REJECTED = "REJECTED", "Rejected"
    WITHDRAWN = "WITHDRAWN", "Withdrawn"


class JobQuerySet(models.QuerySet):
    def recent(self):
        return self.order_by("-created_at")

    def open(self):
        return self.filter(status=JobStatus.OPEN)

    def owned_by(self, user_id):
        return self.filter(company__owner_id=user_id)


class Job(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="jobs")
    posted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="posted_jobs"
    )
    title = models.CharField(max_length=255)
    description = models.TextField()
    location = models.CharField(max_length=255)
    job_type = models.CharField(max_length=20, choices=JobType.choices, default=JobType.FULL_TIME)
    experience_level = models.CharField(max_length=20, choices=ExperienceLevel.choices, default=ExperienceLevel.ENTRY)
    min_salary = models.PositiveIntegerField(blank=True, null=True)
    max_salary = models.PositiveIntegerField(blank=True, null=True)
    status = models.CharField(max_length=10, choices=JobStatus.choices, default=JobStatus.DRAFT)
    expires_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = JobQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.title

    @property
    def accepts_applications(self) -> bool:
        return self.status == JobStatus.OPEN


class JobApplicationQuerySet(models.QuerySet):
    def for_job(self, job):
        return self.filter(job=job)

    def with_chain(self):
        """Join job and company so the owner id comes back with the row."""
        return self.select_related("job", "job__company")

    def visible_to(self, actor):
        if actor.role == User.Role.ADMIN:
            return self
        if actor.role == User.Role.EMPLOYER:
            return self.filter(job__company__owner_id=actor.id)
        if actor.role == User.Role.JOB_SEEKER:
            return self.filter(applicant_id=actor.id)
        return self.none()


class JobApplication(models.Model):
    job = models.ForeignKey(Job, on_delete=models.CASCADE, related_name="applications")
    applicant = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="applications")
    status = models.CharField(max_length=20, choices=ApplicationStatus.choices, default=ApplicationStatus.PENDING)
    cover_letter = models.TextField(blank=True, null=True)
    expected_salary = models.PositiveIntegerField(blank=True, null=True)
    available_from = models.DateField(blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    resume_url = models.CharField(max_length=500)
    applied_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(blank=True, null=True)
    # bumped on every write; conditional updates match on it
    version = models.PositiveIntegerField(default=1)

    objects = JobApplicationQuerySet.as_manager()

    class Meta:
        ordering = ["-applied_at"]
        constraints = [
            models.UniqueConstraint(fields=["job", "applicant"], name="unique_application_per_job"),
        ]

    def __str__(self):
        return f"{self.applicant.username} → {self.job.title}"


class ApplicationStatusEvent(models.Model):
    """One row of an application's status history. Rows are never changed."""

    application = models.ForeignKey(JobApplication, on_delete=models.CASCADE, related_name="status_events")
    sequence = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=ApplicationStatus.choices)
    previous_status = models.CharField(max_length=20, choices=ApplicationStatus.choices, blank=True, null=True)
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    changed_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["sequence"]
        constraints = [
            models.UniqueConstraint(fields=["application", "sequence"], name="unique_status_event_sequence"),
        ]

    def __str__(self):
        return f"#{self.sequence} {self.previous_status or '-'} → {self.status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Status history entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Status history entries are append-only.")

    def as_dict(self) -> dict:
        return {
            "status": self.status,
            "changedBy": self.changed_by_id,
            "changedAt": self.changed_at.isoformat(),
            "previousStatus": self.previous_status,
        }
