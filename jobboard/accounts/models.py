from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    class Role(models.TextChoices):
        ADMIN = "admin", "Admin"
        EMPLOYER = "employer", "Employer"
        JOB_SEEKER = "job_seeker", "Job Seeker"

    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=Role.choices, blank=True)
    is_email_verified = models.BooleanField(default=False)
    avatar_url = models.CharField(max_length=500, blank=True, null=True)

    def __str__(self):
        return f"{self.username} ({self.role or 'no role'})"
