from django.contrib.auth.models import AnonymousUser
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import RequestFactory, TestCase

from companies.models import Company
from jobs.exceptions import Conflict, Denied, NotFound
from jobs.models import Job, JobApplication, JobStatus
from jobs.services import ApplicationService
from resumes.assets import AssetManager
from resumes.config import AssetStoreConfig
from resumes.testing import InMemoryBlobStore

from .identity import NotAuthenticated, Principal, principal_from_request
from .models import User
from .services import ProfileService


class PrincipalTests(TestCase):
    def test_principal_carries_id_and_role(self):
        user = User.objects.create_user(username="e1", password="pass", role="employer", email="e1@example.com")
        principal = Principal.from_user(user)
        self.assertEqual(principal, Principal(id=user.pk, role="employer"))
        self.assertFalse(principal.is_admin)

    def test_superuser_without_role_acts_as_admin(self):
        root = User.objects.create_superuser(username="root", password="pass", email="root@example.com")
        principal = Principal.from_user(root)
        self.assertEqual(principal.role, User.Role.ADMIN)
        self.assertTrue(principal.is_admin)

    def test_user_without_role_has_empty_role(self):
        user = User.objects.create_user(username="nobody", password="pass", email="nobody@example.com")
        self.assertEqual(Principal.from_user(user).role, "")


class PrincipalFromRequestTests(TestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def test_authenticated_request(self):
        user = User.objects.create_user(username="u1", password="pass", role="job_seeker", email="u1@example.com")
        request = self.factory.get("/")
        request.user = user
        self.assertEqual(principal_from_request(request), Principal(id=user.pk, role="job_seeker"))

    def test_anonymous_request_is_rejected(self):
        request = self.factory.get("/")
        request.user = AnonymousUser()
        with self.assertRaises(NotAuthenticated):
            principal_from_request(request)

    def test_request_without_user_is_rejected(self):
        with self.assertRaises(NotAuthenticated):
            principal_from_request(self.factory.get("/"))


def avatar_file(name="me.png"):
    return SimpleUploadedFile(name, b"\x89PNG avatar", content_type="image/png")


class ProfileServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="u1", password="secret-pass", role="job_seeker", email="u1@example.com")
        self.actor = Principal.from_user(self.user)
        self.avatar_blobs = InMemoryBlobStore()
        self.logo_blobs = InMemoryBlobStore()
        self.resume_blobs = InMemoryBlobStore()
        self.avatars = AssetManager(
            AssetStoreConfig(location="", base_url="/media/", folder="avatars"), blob_store=self.avatar_blobs
        )
        self.logos = AssetManager(AssetStoreConfig(location="", base_url="/media/", folder="logos"), blob_store=self.logo_blobs)
        self.resumes = AssetManager(AssetStoreConfig(location="", base_url="/media/"), blob_store=self.resume_blobs)
        self.service = ProfileService(avatars=self.avatars, logos=self.logos, resumes=self.resumes)

    def test_get_profile(self):
        self.assertEqual(self.service.get(self.actor), self.user)
        with self.assertRaises(NotFound):
            self.service.get(Principal(id=424242, role="job_seeker"))

    def test_upload_then_replace_avatar(self):
        user = self.service.update(self.actor, avatar=avatar_file())
        first_key = self.avatars.storage_key_from_url(user.avatar_url)

        user = self.service.update(self.actor, first_name="Alice", avatar=avatar_file("new.png"))
        user.refresh_from_db()
        second_key = self.avatars.storage_key_from_url(user.avatar_url)

        self.assertEqual(user.first_name, "Alice")
        self.assertNotEqual(first_key, second_key)
        self.assertEqual(list(self.avatar_blobs.blobs), [second_key])

    def test_avatar_must_be_an_image(self):
        pdf = SimpleUploadedFile("cv.pdf", b"%PDF-1.4", content_type="application/pdf")
        with self.assertRaises(ValidationError):
            self.service.update(self.actor, avatar=pdf)
        self.assertEqual(self.avatar_blobs.blobs, {})

    def test_remove_avatar(self):
        self.service.update(self.actor, avatar=avatar_file())
        user = self.service.remove_avatar(self.actor)
        user.refresh_from_db()
        self.assertIsNone(user.avatar_url)
        self.assertEqual(self.avatar_blobs.blobs, {})

    def test_email_change_needs_current_password(self):
        with self.assertRaises(ValidationError):
            self.service.update(self.actor, email="new@example.com")
        with self.assertRaises(Denied):
            self.service.update(self.actor, email="new@example.com", password="wrong")
        user = self.service.update(self.actor, email="new@example.com", password="secret-pass")
        user.refresh_from_db()
        self.assertEqual(user.email, "new@example.com")

    def test_email_already_in_use(self):
        User.objects.create_user(username="u2", password="pass", role="job_seeker", email="taken@example.com")
        with self.assertRaises(Conflict):
            self.service.update(self.actor, email="taken@example.com", password="secret-pass")

    def test_unknown_field_is_rejected(self):
        with self.assertRaises(TypeError):
            self.service.update(self.actor, role="admin")

    def test_delete_account_releases_every_file(self):
        self.service.update(self.actor, avatar=avatar_file())
        employer = User.objects.create_user(username="e1", password="pass", role="employer", email="e1@example.com")
        company = Company.objects.create(owner=employer, name="ACME", slug="acme")
        job = Job.objects.create(company=company, title="Backend", description="Django", location="Remote", status=JobStatus.OPEN)
        resume = SimpleUploadedFile("cv.pdf", b"%PDF-1.4", content_type="application/pdf")
        ApplicationService(assets=self.resumes).create(self.actor, job.id, resume)

        with self.assertRaises(Denied):
            self.service.delete(self.actor, "wrong")
        self.service.delete(self.actor, "secret-pass")

        self.assertFalse(User.objects.filter(pk=self.user.pk).exists())
        self.assertFalse(JobApplication.objects.exists())
        self.assertEqual(self.avatar_blobs.blobs, {})
        self.assertEqual(self.resume_blobs.blobs, {})

    def test_deleting_an_employer_releases_company_files(self):
        employer = User.objects.create_user(username="e1", password="pass", role="employer", email="e1@example.com")
        logo_url = self.logos.upload(avatar_file("logo.png")).url
        company = Company.objects.create(owner=employer, name="ACME", slug="acme", logo_url=logo_url)
        job = Job.objects.create(company=company, title="Backend", description="Django", location="Remote", status=JobStatus.OPEN)
        resume = SimpleUploadedFile("cv.pdf", b"%PDF-1.4", content_type="application/pdf")
        ApplicationService(assets=self.resumes).create(self.actor, job.id, resume)

        self.service.delete(Principal.from_user(employer), "pass")

        self.assertFalse(Company.objects.exists())
        self.assertEqual(self.logo_blobs.blobs, {})
        self.assertEqual(self.resume_blobs.blobs, {})
        self.assertTrue(User.objects.filter(pk=self.user.pk).exists())
