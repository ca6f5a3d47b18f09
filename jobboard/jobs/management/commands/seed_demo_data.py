import random

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management.base import BaseCommand
from django.utils.text import slugify

from accounts.identity import Principal
from companies.models import Company
from jobs.models import ApplicationStatus, ExperienceLevel, Job, JobApplication, JobStatus, JobType
from jobs.services import ApplicationService

User = get_user_model()


class Command(BaseCommand):
    help = "Seed demo data (admin, employers, companies, open jobs, job seekers, applications)."

    def add_arguments(self, parser):
        parser.add_argument("--prefix", type=str, default="demo")
        parser.add_argument("--employers", type=int, default=3)
        parser.add_argument("--jobseekers", type=int, default=6)
        parser.add_argument("--jobs-per-employer", type=int, default=3)
        parser.add_argument("--applications-per-seeker", type=int, default=2)
        parser.add_argument("--password", type=str, default="DemoPass123!")
        parser.add_argument("--seed", type=int, default=42)
        parser.add_argument("--wipe", action="store_true", help="Delete existing users starting with prefix before seeding.")

    def _make_user(self, username, email, role, password):
        user, _ = User.objects.get_or_create(
            username=username,
            defaults={
                "email": email,
                "role": role,
                "is_active": True,
                "is_email_verified": True,
            },
        )
        # Keep demo credentials predictable.
        user.email = email
        user.role = role
        user.is_active = True
        user.is_email_verified = True
        user.set_password(password)
        user.save()
        return user

    def _resume(self, username):
        content = f"%PDF-1.4\n% demo resume for {username}\n".encode()
        return SimpleUploadedFile(f"{username}_resume.pdf", content, content_type="application/pdf")

    def handle(self, *args, **opts):
        rnd = random.Random(opts["seed"])
        prefix = (opts["prefix"] or "demo").strip().lower()
        employers_n = max(1, int(opts["employers"]))
        seekers_n = max(1, int(opts["jobseekers"]))
        jobs_per_employer = max(1, int(opts["jobs_per_employer"]))
        apps_per_seeker = max(0, int(opts["applications_per_seeker"]))
        password = opts["password"]
        service = ApplicationService()

        if opts["wipe"]:
            # go through the service so resume files are released too
            admin = User.objects.filter(username=f"{prefix}_admin").first()
            if admin:
                actor = Principal.from_user(admin)
                for app_id in JobApplication.objects.filter(applicant__username__startswith=f"{prefix}_").values_list("id", flat=True):
                    service.delete(actor, app_id)
            User.objects.filter(username__startswith=f"{prefix}_").delete()

        self._make_user(f"{prefix}_admin", f"{prefix}_admin@example.com", User.Role.ADMIN, password)

        company_names = ["NorthBridge Labs", "Harbor Metrics", "BluePeak Systems", "CedarStone Digital", "OrbitGrid Tech"]
        job_templates = [
            ("Backend Developer", "Build and maintain APIs, background jobs, and PostgreSQL schemas."),
            ("Frontend Engineer", "Develop responsive interfaces with modern JavaScript and API integrations."),
            ("Data Analyst", "Transform product and hiring data into dashboards and actionable insights."),
            ("DevOps Engineer", "Automate CI/CD pipelines, deployments, and runtime monitoring."),
        ]
        locations = ["London", "Manchester", "Leeds", "Bristol", "Remote"]

        created_jobs = []
        for i in range(1, employers_n + 1):
            username = f"{prefix}_emp_{i}"
            user = self._make_user(username, f"{username}@example.com", User.Role.EMPLOYER, password)
            name = f"{company_names[(i - 1) % len(company_names)]} {i}"
            company, _ = Company.objects.get_or_create(
                slug=slugify(f"{prefix}-{name}"),
                defaults={"owner": user, "name": name, "description": "Hiring across engineering and data teams."},
            )
            for j in range(1, jobs_per_employer + 1):
                title, description = job_templates[(i + j) % len(job_templates)]
                min_salary = rnd.randint(35_000, 95_000)
                job, _ = Job.objects.get_or_create(
                    company=company,
                    title=f"{title} - Team {i}.{j}",
                    defaults={
                        "posted_by": user,
                        "description": description,
                        "location": rnd.choice(locations),
                        "job_type": rnd.choice(JobType.values),
                        "experience_level": rnd.choice(ExperienceLevel.values),
                        "min_salary": min_salary,
                        "max_salary": min_salary + rnd.randint(8_000, 35_000),
                        "status": JobStatus.OPEN,
                    },
                )
                created_jobs.append(job)

        created_apps = 0
        for i in range(1, seekers_n + 1):
            username = f"{prefix}_seeker_{i}"
            seeker = self._make_user(username, f"{username}@example.com", User.Role.JOB_SEEKER, password)
            actor = Principal.from_user(seeker)
            open_jobs = [job for job in created_jobs if job.accepts_applications]
            for job in rnd.sample(open_jobs, k=min(apps_per_seeker, len(open_jobs))):
                if JobApplication.objects.filter(job=job, applicant=seeker).exists():
                    continue
                application = service.create(
                    actor,
                    job.id,
                    self._resume(username),
                    cover_letter="I am interested in this role and believe my background is a strong fit.",
                    expected_salary=job.min_salary,
                )
                created_apps += 1
                status = rnd.choices(
                    [ApplicationStatus.PENDING, ApplicationStatus.REVIEWING, ApplicationStatus.REJECTED],
                    weights=[60, 25, 15],
                    k=1,
                )[0]
                if status != ApplicationStatus.PENDING:
                    owner = Principal.from_user(job.company.owner)
                    service.change_status(owner, application.id, status, notes="Seeded demo update")

        self.stdout.write(self.style.SUCCESS("Seeded demo data successfully."))
        self.stdout.write(f"Employers: {employers_n}")
        self.stdout.write(f"Job seekers: {seekers_n}")
        self.stdout.write(f"Jobs: {len(created_jobs)}")
        self.stdout.write(f"New applications: {created_apps}")
        self.stdout.write("")
        self.stdout.write(f"Sample credentials: {prefix}_admin / {password}, {prefix}_emp_1 / {password}, {prefix}_seeker_1 / {password}")
