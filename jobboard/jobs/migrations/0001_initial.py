from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


STATUS_CHOICES = [
    ("PENDING", "Pending"),
    ("REVIEWING", "Reviewing"),
    ("ACCEPTED", "Accepted"),
    ("REJECTED", "Rejected"),
    ("WITHDRAWN", "Withdrawn"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("companies", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Job",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField()),
                ("location", models.CharField(max_length=255)),
                ("job_type", models.CharField(choices=[("full_time", "Full-time"), ("part_time", "Part-time"), ("contract", "Contract"), ("intern", "Internship"), ("remote", "Remote")], default="full_time", max_length=20)),
                ("experience_level", models.CharField(choices=[("entry", "Entry"), ("mid", "Mid"), ("senior", "Senior"), ("lead", "Lead")], default="entry", max_length=20)),
                ("min_salary", models.PositiveIntegerField(blank=True, null=True)),
                ("max_salary", models.PositiveIntegerField(blank=True, null=True)),
                ("status", models.CharField(choices=[("DRAFT", "Draft"), ("OPEN", "Open"), ("CLOSED", "Closed"), ("FILLED", "Filled")], default="DRAFT", max_length=10)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="jobs", to="companies.company")),
                ("posted_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="posted_jobs", to=settings.AUTH_USER_MODEL)),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="JobApplication",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("status", models.CharField(choices=STATUS_CHOICES, default="PENDING", max_length=20)),
                ("cover_letter", models.TextField(blank=True, null=True)),
                ("expected_salary", models.PositiveIntegerField(blank=True, null=True)),
                ("available_from", models.DateField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, null=True)),
                ("resume_url", models.CharField(max_length=500)),
                ("applied_at", models.DateTimeField(auto_now_add=True)),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=1)),
                ("applicant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="applications", to=settings.AUTH_USER_MODEL)),
                ("job", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="applications", to="jobs.job")),
            ],
            options={"ordering": ["-applied_at"]},
        ),
        migrations.AddConstraint(
            model_name="jobapplication",
            constraint=models.UniqueConstraint(fields=("job", "applicant"), name="unique_application_per_job"),
        ),
        migrations.CreateModel(
            name="ApplicationStatusEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sequence", models.PositiveIntegerField()),
                ("status", models.CharField(choices=STATUS_CHOICES, max_length=20)),
                ("previous_status", models.CharField(blank=True, choices=STATUS_CHOICES, max_length=20, null=True)),
                ("changed_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("application", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="status_events", to="jobs.jobapplication")),
                ("changed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={"ordering": ["sequence"]},
        ),
        migrations.AddConstraint(
            model_name="applicationstatusevent",
            constraint=models.UniqueConstraint(fields=("application", "sequence"), name="unique_status_event_sequence"),
        ),
    ]
