from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase

from accounts.identity import Principal
from accounts.models import User
from jobs.exceptions import Conflict, Denied, NotFound
from jobs.models import Job, JobStatus
from jobs.services import ApplicationService
from resumes.assets import AssetManager
from resumes.config import AssetStoreConfig
from resumes.testing import InMemoryBlobStore

from .models import Company
from .services import CompanyService


def logo_file(name="logo.png"):
    return SimpleUploadedFile(name, b"\x89PNG logo", content_type="image/png")


class CompanyServiceTests(TestCase):
    def setUp(self):
        self.admin = Principal.from_user(
            User.objects.create_user(username="admin", password="pass", role="admin", email="admin@example.com")
        )
        self.e1_user = User.objects.create_user(username="e1", password="pass", role="employer", email="e1@example.com")
        self.e1 = Principal.from_user(self.e1_user)
        self.e2 = Principal.from_user(
            User.objects.create_user(username="e2", password="pass", role="employer", email="e2@example.com")
        )
        self.u1 = Principal.from_user(
            User.objects.create_user(username="u1", password="pass", role="job_seeker", email="u1@example.com")
        )

        self.logo_blobs = InMemoryBlobStore()
        self.resume_blobs = InMemoryBlobStore()
        self.logos = AssetManager(AssetStoreConfig(location="", base_url="/media/", folder="logos"), blob_store=self.logo_blobs)
        self.resumes = AssetManager(AssetStoreConfig(location="", base_url="/media/"), blob_store=self.resume_blobs)
        self.service = CompanyService(logos=self.logos, resumes=self.resumes)

    def test_employer_creates_company_with_logo(self):
        company = self.service.create(self.e1, name="ACME", slug="acme", logo=logo_file())
        self.assertEqual(company.owner_id, self.e1.id)
        self.assertTrue(company.logo_url.startswith("/media/logos/"))
        self.assertTrue(self.logo_blobs.exists(self.logos.storage_key_from_url(company.logo_url)))

    def test_job_seeker_cannot_create_company(self):
        with self.assertRaises(Denied):
            self.service.create(self.u1, name="ACME", slug="acme")
        self.assertFalse(Company.objects.exists())

    def test_duplicate_slug_is_conflict_and_uploads_nothing(self):
        self.service.create(self.e1, name="ACME", slug="acme")
        with self.assertRaises(Conflict):
            self.service.create(self.e2, name="Other ACME", slug="acme", logo=logo_file())
        self.assertEqual(self.logo_blobs.blobs, {})

    def test_unknown_field_is_rejected(self):
        with self.assertRaises(TypeError):
            self.service.create(self.e1, name="ACME", slug="acme", owner_id=self.e2.id)

    def test_owner_replaces_logo(self):
        company = self.service.create(self.e1, name="ACME", slug="acme", logo=logo_file())
        old_key = self.logos.storage_key_from_url(company.logo_url)

        company = self.service.update(self.e1, company.pk, name="ACME Ltd", logo=logo_file("new.png"))
        company.refresh_from_db()

        self.assertEqual(company.name, "ACME Ltd")
        new_key = self.logos.storage_key_from_url(company.logo_url)
        self.assertNotEqual(new_key, old_key)
        self.assertEqual(list(self.logo_blobs.blobs), [new_key])

    def test_non_owner_cannot_update(self):
        company = self.service.create(self.e1, name="ACME", slug="acme")
        with self.assertRaises(Denied):
            self.service.update(self.e2, company.pk, name="Hijacked")

    def test_admin_can_update(self):
        company = self.service.create(self.e1, name="ACME", slug="acme")
        company = self.service.update(self.admin, company.pk, industry="Software")
        company.refresh_from_db()
        self.assertEqual(company.industry, "Software")

    def test_missing_company_is_not_found(self):
        with self.assertRaises(NotFound):
            self.service.update(self.e2, 99999, name="Ghost")
        with self.assertRaises(NotFound):
            self.service.delete(self.e2, 99999)

    def test_delete_releases_logo_and_application_resumes(self):
        company = self.service.create(self.e1, name="ACME", slug="acme", logo=logo_file())
        job = Job.objects.create(
            company=company, title="Backend", description="Django", location="Remote", status=JobStatus.OPEN
        )
        resume = SimpleUploadedFile("cv.pdf", b"%PDF-1.4", content_type="application/pdf")
        ApplicationService(assets=self.resumes).create(self.u1, job.id, resume)
        self.assertEqual(len(self.resume_blobs.blobs), 1)

        self.service.delete(self.e1, company.pk)

        self.assertFalse(Company.objects.filter(pk=company.pk).exists())
        self.assertFalse(Job.objects.filter(pk=job.pk).exists())
        self.assertEqual(self.logo_blobs.blobs, {})
        self.assertEqual(self.resume_blobs.blobs, {})

    def test_non_owner_cannot_delete(self):
        company = self.service.create(self.e1, name="ACME", slug="acme")
        with self.assertRaises(Denied):
            self.service.delete(self.e2, company.pk)
        self.assertTrue(Company.objects.filter(pk=company.pk).exists())


class CompanyReadTests(TestCase):
    def setUp(self):
        owner = User.objects.create_user(username="e1", password="pass", role="employer", email="e1@example.com")
        self.acme = Company.objects.create(
            owner=owner, name="ACME", slug="acme", industry="Software", email="jobs@acme.example", description="Rockets"
        )
        self.harbor = Company.objects.create(
            owner=owner, name="Harbor Metrics", slug="harbor-metrics", industry="Analytics", description="Dashboards"
        )
        self.job = Job.objects.create(company=self.acme, title="Backend", description="Django", location="Remote")
        self.service = CompanyService(logos=object(), resumes=object())

    def test_get_company_with_jobs(self):
        company = self.service.get(self.acme.pk)
        self.assertEqual(company, self.acme)
        with self.assertNumQueries(0):
            self.assertEqual(list(company.jobs.all()), [self.job])

    def test_get_missing_company(self):
        with self.assertRaises(NotFound):
            self.service.get(99999)

    def test_list_filters(self):
        self.assertEqual(set(self.service.list()), {self.acme, self.harbor})
        self.assertEqual(list(self.service.list(industry="soft")), [self.acme])
        self.assertEqual(list(self.service.list(email="JOBS@acme.example")), [self.acme])
        self.assertEqual(list(self.service.list(slug="harbor")), [self.harbor])

    def test_list_search_covers_name_and_description(self):
        self.assertEqual(list(self.service.list(search="metrics")), [self.harbor])
        self.assertEqual(list(self.service.list(search="rocket")), [self.acme])
