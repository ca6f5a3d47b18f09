from datetime import timedelta
from io import StringIO
from types import SimpleNamespace
from unittest import mock

from django.contrib import admin
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.core.management import call_command
from django.db import DatabaseError, IntegrityError
from django.test import RequestFactory, SimpleTestCase, TestCase
from django.utils import timezone

from accounts.identity import Principal
from accounts.models import User
from companies.models import Company
from resumes.assets import AssetManager
from resumes.config import AssetStoreConfig
from resumes.testing import InMemoryBlobStore

from . import transitions
from .authorization import DECISION_TABLE, Action, Role, authorize, ensure_allowed
from .exceptions import AssetFailure, Conflict, Denied, InternalError, InvalidTransition, NotFound
from .ledger import StatusLedger
from .models import ApplicationStatus, ApplicationStatusEvent, Job, JobApplication, JobStatus
from .services import ApplicationService, JobService
from .transitions import StaleApplication, apply_transition

APPLICATION_MUTATIONS = (
    Action.UPDATE_APPLICATION_STATUS,
    Action.UPDATE_APPLICANT_FIELDS,
    Action.DELETE_APPLICATION,
)


class AuthorizationTableTests(SimpleTestCase):
    def setUp(self):
        self.admin = Principal(id=1, role="admin")
        self.owner = Principal(id=2, role="employer")
        self.stranger = Principal(id=3, role="employer")
        self.applicant = Principal(id=4, role="job_seeker")
        self.other_seeker = Principal(id=5, role="job_seeker")
        self.chain = SimpleNamespace(owner_id=2, applicant_id=4)

    def test_every_action_has_a_rule_for_every_role(self):
        for action in Action:
            for role in Role:
                self.assertIn(role, DECISION_TABLE[action], f"{action} has no rule for {role}")

    def test_admin_is_allowed_everything(self):
        for action in Action:
            self.assertTrue(authorize(self.admin, action, self.chain), action)

    def test_owner_employer_rows(self):
        self.assertTrue(authorize(self.owner, Action.READ_APPLICATION, self.chain))
        self.assertTrue(authorize(self.owner, Action.UPDATE_APPLICATION_STATUS, self.chain))
        self.assertTrue(authorize(self.owner, Action.DELETE_APPLICATION, self.chain))
        self.assertFalse(authorize(self.owner, Action.UPDATE_APPLICANT_FIELDS, self.chain))
        self.assertFalse(authorize(self.owner, Action.CREATE_APPLICATION, self.chain))

    def test_applicant_rows(self):
        self.assertTrue(authorize(self.applicant, Action.CREATE_APPLICATION, self.chain))
        self.assertTrue(authorize(self.applicant, Action.READ_APPLICATION, self.chain))
        self.assertTrue(authorize(self.applicant, Action.UPDATE_APPLICANT_FIELDS, self.chain))
        self.assertTrue(authorize(self.applicant, Action.DELETE_APPLICATION, self.chain))
        self.assertFalse(authorize(self.applicant, Action.UPDATE_APPLICATION_STATUS, self.chain))

    def test_non_owner_employer_is_denied_every_mutation(self):
        for action in APPLICATION_MUTATIONS + (Action.READ_APPLICATION, Action.UPDATE_JOB, Action.DELETE_JOB):
            decision = authorize(self.stranger, action, self.chain)
            self.assertFalse(decision, action)
            self.assertTrue(decision.reason)

    def test_other_job_seeker_is_denied(self):
        for action in APPLICATION_MUTATIONS + (Action.READ_APPLICATION, Action.CREATE_APPLICATION):
            self.assertFalse(authorize(self.other_seeker, action, self.chain), action)

    def test_unknown_role_is_always_denied(self):
        ghost = Principal(id=2, role="superhero")
        for action in Action:
            self.assertFalse(authorize(ghost, action, self.chain), action)

    def test_owner_rule_without_chain_denies(self):
        self.assertFalse(authorize(self.owner, Action.UPDATE_JOB, None))

    def test_ensure_allowed_raises_denied_with_reason(self):
        with self.assertRaises(Denied) as ctx:
            ensure_allowed(self.stranger, Action.UPDATE_APPLICATION_STATUS, self.chain)
        self.assertIn("your own company", ctx.exception.reason)
        self.assertEqual(ctx.exception.status_code, 403)


class LifecycleTestCase(TestCase):
    def setUp(self):
        self.admin_user = User.objects.create_user(username="admin", password="pass", role="admin", email="admin@example.com")
        self.e1_user = User.objects.create_user(username="e1", password="pass", role="employer", email="e1@example.com")
        self.e2_user = User.objects.create_user(username="e2", password="pass", role="employer", email="e2@example.com")
        self.u1_user = User.objects.create_user(username="u1", password="pass", role="job_seeker", email="u1@example.com")
        self.u2_user = User.objects.create_user(username="u2", password="pass", role="job_seeker", email="u2@example.com")
        self.admin = Principal.from_user(self.admin_user)
        self.e1 = Principal.from_user(self.e1_user)
        self.e2 = Principal.from_user(self.e2_user)
        self.u1 = Principal.from_user(self.u1_user)
        self.u2 = Principal.from_user(self.u2_user)

        self.company = Company.objects.create(owner=self.e1_user, name="ACME", slug="acme")
        Company.objects.create(owner=self.e2_user, name="Rival", slug="rival")
        self.job = Job.objects.create(
            company=self.company,
            posted_by=self.e1_user,
            title="Backend Developer",
            description="Django",
            location="Remote",
            status=JobStatus.OPEN,
        )

        self.blobs = InMemoryBlobStore()
        self.assets = AssetManager(AssetStoreConfig(location="", base_url="/media/"), blob_store=self.blobs)
        self.service = ApplicationService(assets=self.assets)

    def resume(self, name="cv.pdf"):
        return SimpleUploadedFile(name, b"%PDF-1.4 resume", content_type="application/pdf")

    def apply(self, actor=None, **kwargs):
        return self.service.create(actor or self.u1, self.job.id, self.resume(), **kwargs)

    def key_of(self, application):
        return self.assets.storage_key_from_url(application.resume_url)

    def assertLedgerConsistent(self, application):
        application.refresh_from_db()
        self.assertTrue(StatusLedger(application).is_consistent())


class CreateApplicationTests(LifecycleTestCase):
    def test_job_seeker_applies_to_open_job(self):
        app = self.apply(cover_letter="I would love to work on your Django stack.", expected_salary=50000)

        self.assertEqual(app.status, ApplicationStatus.PENDING)
        self.assertEqual(app.applicant_id, self.u1.id)
        history = StatusLedger(app).as_list()
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["status"], ApplicationStatus.PENDING)
        self.assertEqual(history[0]["changedBy"], self.u1.id)
        self.assertIsNone(history[0]["previousStatus"])
        self.assertTrue(self.blobs.exists(self.key_of(app)))
        self.assertLedgerConsistent(app)

    def test_second_application_for_same_pair_is_conflict(self):
        self.apply()
        with self.assertRaises(Conflict):
            self.apply()
        self.assertEqual(JobApplication.objects.filter(job=self.job, applicant=self.u1_user).count(), 1)
        self.assertEqual(len(self.blobs.blobs), 1)

    def test_closed_job_does_not_accept_applications(self):
        self.job.status = JobStatus.CLOSED
        self.job.save(update_fields=["status"])
        with self.assertRaises(Conflict):
            self.apply()
        self.assertFalse(JobApplication.objects.exists())
        self.assertEqual(self.blobs.blobs, {})

    def test_missing_job_is_not_found_before_permission(self):
        with self.assertRaises(NotFound):
            self.service.create(self.u1, 99999, self.resume())
        with self.assertRaises(NotFound):
            self.service.create(self.e1, 99999, self.resume())

    def test_employer_cannot_apply(self):
        with self.assertRaises(Denied):
            self.apply(actor=self.e1)

    def test_permission_is_checked_before_job_status(self):
        self.job.status = JobStatus.DRAFT
        self.job.save(update_fields=["status"])
        with self.assertRaises(Denied):
            self.apply(actor=self.e2)

    def test_admin_applies_on_behalf_of_job_seeker(self):
        app = self.apply(actor=self.admin, applicant_id=self.u1.id)
        self.assertEqual(app.applicant_id, self.u1.id)
        self.assertEqual(StatusLedger(app).last().changed_by_id, self.admin.id)

    def test_job_seeker_cannot_apply_on_behalf_of_someone_else(self):
        with self.assertRaises(Denied):
            self.apply(actor=self.u2, applicant_id=self.u1.id)

    def test_on_behalf_of_unknown_user_is_not_found(self):
        with self.assertRaises(NotFound):
            self.apply(actor=self.admin, applicant_id=424242)

    def test_upload_failure_is_fatal_and_writes_nothing(self):
        self.blobs.fail_uploads = True
        with self.assertRaises(AssetFailure):
            self.apply()
        self.assertFalse(JobApplication.objects.exists())

    def test_invalid_resume_is_rejected_before_storage(self):
        service = ApplicationService(assets=AssetManager(AssetStoreConfig.from_settings()))
        bogus = SimpleUploadedFile("cv.pdf", b"MZ", content_type="application/x-msdownload")
        with self.assertRaises(ValidationError):
            service.create(self.u1, self.job.id, bogus)
        self.assertFalse(JobApplication.objects.exists())

    def test_lost_race_releases_uploaded_resume(self):
        rival_store = self.blobs
        real_upload = rival_store.upload

        def upload_while_rival_applies(file, folder):
            blob = real_upload(file, folder)
            JobApplication.objects.create(job=self.job, applicant=self.u1_user, resume_url="/media/applications/rival.pdf")
            return blob

        rival_store.upload = upload_while_rival_applies
        with self.assertRaises(Conflict):
            self.apply()
        self.assertEqual(JobApplication.objects.filter(job=self.job, applicant=self.u1_user).count(), 1)
        self.assertEqual(rival_store.blobs, {})


class StatusTransitionTests(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.app = self.apply()

    def test_owner_moves_to_reviewing(self):
        app = self.service.change_status(self.e1, self.app.id, ApplicationStatus.REVIEWING)

        entries = StatusLedger(app).entries()
        self.assertEqual([e.status for e in entries], [ApplicationStatus.PENDING, ApplicationStatus.REVIEWING])
        self.assertEqual(entries[1].previous_status, ApplicationStatus.PENDING)
        self.assertEqual(entries[1].changed_by_id, self.e1.id)
        self.assertIsNotNone(app.responded_at)
        self.assertEqual(app.responded_at, entries[1].changed_at)
        self.assertLedgerConsistent(app)

    def test_same_status_appends_nothing_and_keeps_responded_at(self):
        self.service.change_status(self.e1, self.app.id, ApplicationStatus.REVIEWING)
        self.app.refresh_from_db()
        responded_at = self.app.responded_at

        self.service.change_status(self.e1, self.app.id, ApplicationStatus.REVIEWING)

        self.app.refresh_from_db()
        self.assertEqual(len(StatusLedger(self.app)), 2)
        self.assertEqual(self.app.responded_at, responded_at)
        self.assertLedgerConsistent(self.app)

    def test_same_status_still_saves_notes(self):
        self.service.change_status(self.e1, self.app.id, ApplicationStatus.PENDING, notes="Strong portfolio")
        self.app.refresh_from_db()
        self.assertEqual(self.app.notes, "Strong portfolio")
        self.assertIsNone(self.app.responded_at)
        self.assertEqual(len(StatusLedger(self.app)), 1)

    def test_non_owner_employer_is_denied(self):
        with self.assertRaises(Denied):
            self.service.change_status(self.e2, self.app.id, ApplicationStatus.REVIEWING)
        self.app.refresh_from_db()
        self.assertEqual(self.app.status, ApplicationStatus.PENDING)
        self.assertEqual(len(StatusLedger(self.app)), 1)

    def test_applicant_cannot_change_status(self):
        with self.assertRaises(Denied):
            self.service.change_status(self.u1, self.app.id, ApplicationStatus.ACCEPTED)

    def test_admin_can_change_status(self):
        app = self.service.change_status(self.admin, self.app.id, ApplicationStatus.REJECTED)
        self.assertEqual(app.status, ApplicationStatus.REJECTED)
        self.assertLedgerConsistent(app)

    def test_unknown_status_is_invalid(self):
        with self.assertRaises(InvalidTransition):
            self.service.change_status(self.e1, self.app.id, "HIRED")

    def test_missing_application_is_not_found_before_permission(self):
        with self.assertRaises(NotFound):
            self.service.change_status(self.e2, 99999, ApplicationStatus.REVIEWING)

    def test_any_differing_status_is_accepted(self):
        for status in (ApplicationStatus.REJECTED, ApplicationStatus.REVIEWING, ApplicationStatus.PENDING):
            self.service.change_status(self.e1, self.app.id, status)
        self.app.refresh_from_db()
        self.assertEqual(len(StatusLedger(self.app)), 4)
        self.assertLedgerConsistent(self.app)

    def test_stale_copy_cannot_overwrite(self):
        first = JobApplication.objects.get(pk=self.app.pk)
        second = JobApplication.objects.get(pk=self.app.pk)
        apply_transition(first, ApplicationStatus.REVIEWING, self.e1)
        with self.assertRaises(StaleApplication):
            apply_transition(second, ApplicationStatus.ACCEPTED, self.e1)
        self.assertLedgerConsistent(first)

    def test_concurrent_update_is_retried_and_both_are_recorded(self):
        real = transitions.apply_transition
        raced = []

        def racing(application, new_status, actor, **kwargs):
            if not raced:
                raced.append(True)
                rival = JobApplication.objects.get(pk=application.pk)
                real(rival, ApplicationStatus.REVIEWING, self.admin)
            return real(application, new_status, actor, **kwargs)

        with mock.patch("jobs.services.apply_transition", side_effect=racing):
            app = self.service.change_status(self.e1, self.app.id, ApplicationStatus.ACCEPTED)

        entries = StatusLedger(app).entries()
        self.assertEqual(
            [(e.previous_status, e.status) for e in entries],
            [
                (None, ApplicationStatus.PENDING),
                (ApplicationStatus.PENDING, ApplicationStatus.REVIEWING),
                (ApplicationStatus.REVIEWING, ApplicationStatus.ACCEPTED),
            ],
        )
        self.assertLedgerConsistent(app)

    def test_gives_up_after_max_retries(self):
        service = ApplicationService(assets=self.assets, max_retries=1)
        real = transitions.apply_transition

        def always_stale(application, new_status, actor, **kwargs):
            rival = JobApplication.objects.get(pk=application.pk)
            real(rival, ApplicationStatus.REJECTED if rival.status != ApplicationStatus.REJECTED else ApplicationStatus.PENDING, self.admin)
            return real(application, new_status, actor, **kwargs)

        with mock.patch("jobs.services.apply_transition", side_effect=always_stale):
            with self.assertRaises(Conflict):
                service.change_status(self.e1, self.app.id, ApplicationStatus.ACCEPTED)
        self.assertLedgerConsistent(self.app)

    def test_history_rows_are_append_only(self):
        event = StatusLedger(self.app).last()
        event.status = ApplicationStatus.ACCEPTED
        with self.assertRaises(ValueError):
            event.save()
        with self.assertRaises(ValueError):
            event.delete()


class ApplicantUpdateTests(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.app = self.apply(cover_letter="Original cover letter text")
        self.old_key = self.key_of(self.app)

    def test_applicant_updates_own_fields(self):
        app = self.service.update(self.u1, self.app.id, cover_letter="A better cover letter", expected_salary=60000)
        app.refresh_from_db()
        self.assertEqual(app.cover_letter, "A better cover letter")
        self.assertEqual(app.expected_salary, 60000)
        self.assertEqual(len(StatusLedger(app)), 1)

    def test_employer_cannot_touch_applicant_fields(self):
        with self.assertRaises(Denied):
            self.service.update(self.e1, self.app.id, cover_letter="Rewritten by employer")

    def test_mixed_field_sets_need_both_permissions(self):
        with self.assertRaises(Denied):
            self.service.update(self.u1, self.app.id, status=ApplicationStatus.ACCEPTED, cover_letter="Hire me please")
        self.app.refresh_from_db()
        self.assertEqual(self.app.cover_letter, "Original cover letter text")
        self.assertEqual(self.app.status, ApplicationStatus.PENDING)

    def test_admin_updates_both_sets(self):
        app = self.service.update(
            self.admin, self.app.id, status=ApplicationStatus.REVIEWING, notes="Admin note", expected_salary=70000
        )
        app.refresh_from_db()
        self.assertEqual(app.status, ApplicationStatus.REVIEWING)
        self.assertEqual(app.expected_salary, 70000)
        self.assertLedgerConsistent(app)

    def test_empty_update_still_requires_read_access(self):
        with self.assertRaises(Denied):
            self.service.update(self.e2, self.app.id)

    def test_unknown_field_is_a_programming_error(self):
        with self.assertRaises(TypeError):
            self.service.update(self.u1, self.app.id, applicant_id=self.u2.id)

    def test_resume_replace_deletes_old_file(self):
        app = self.service.update(self.u1, self.app.id, resume=self.resume("new.pdf"))
        app.refresh_from_db()
        new_key = self.key_of(app)

        self.assertNotEqual(new_key, self.old_key)
        self.assertTrue(self.blobs.exists(new_key))
        self.assertFalse(self.blobs.exists(self.old_key))
        self.assertEqual(list(self.blobs.blobs), [new_key])

    def test_resume_replace_survives_old_delete_failure(self):
        self.blobs.fail_deletes = True
        app = self.service.update(self.u1, self.app.id, resume=self.resume("new.pdf"))
        app.refresh_from_db()
        new_key = self.key_of(app)

        self.assertNotEqual(new_key, self.old_key)
        self.assertTrue(self.blobs.exists(new_key))
        # old file is orphaned, not an error
        self.assertTrue(self.blobs.exists(self.old_key))

    def test_resume_replace_rolls_back_upload_when_write_fails(self):
        service = ApplicationService(assets=self.assets, max_retries=1)
        real = transitions.apply_transition

        def stale(application, new_status, actor, **kwargs):
            JobApplication.objects.filter(pk=application.pk).update(version=application.version + 1)
            return real(application, new_status, actor, **kwargs)

        with mock.patch("jobs.services.apply_transition", side_effect=stale):
            with self.assertRaises(Conflict):
                service.update(self.u1, self.app.id, resume=self.resume("new.pdf"))

        self.app.refresh_from_db()
        self.assertEqual(self.key_of(self.app), self.old_key)
        self.assertEqual(list(self.blobs.blobs), [self.old_key])

    def test_resume_upload_failure_keeps_old_reference(self):
        self.blobs.fail_uploads = True
        with self.assertRaises(AssetFailure):
            self.service.update(self.u1, self.app.id, resume=self.resume("new.pdf"))
        self.app.refresh_from_db()
        self.assertEqual(self.key_of(self.app), self.old_key)
        self.assertTrue(self.blobs.exists(self.old_key))


class ReadApplicationTests(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.app = self.apply()
        other_job = Job.objects.create(
            company=Company.objects.get(slug="rival"), title="Designer", description="Figma", location="Leeds", status=JobStatus.OPEN
        )
        self.other_app = self.service.create(self.u2, other_job.id, self.resume())

    def test_visible_to_parties_of_the_application(self):
        for actor in (self.u1, self.e1, self.admin):
            self.assertEqual(self.service.get(actor, self.app.id).pk, self.app.pk)

    def test_hidden_from_everyone_else(self):
        for actor in (self.u2, self.e2):
            with self.assertRaises(Denied):
                self.service.get(actor, self.app.id)

    def test_history_is_readable(self):
        self.service.change_status(self.e1, self.app.id, ApplicationStatus.REVIEWING)
        history = self.service.history(self.u1, self.app.id)
        self.assertEqual([h["status"] for h in history], ["PENDING", "REVIEWING"])
        self.assertEqual(history[1]["previousStatus"], "PENDING")

    def test_list_is_scoped_by_role(self):
        self.assertEqual(set(self.service.list_for(self.admin)), {self.app, self.other_app})
        self.assertEqual(list(self.service.list_for(self.e1)), [self.app])
        self.assertEqual(list(self.service.list_for(self.e2)), [self.other_app])
        self.assertEqual(list(self.service.list_for(self.u1)), [self.app])

    def test_list_filters_by_status(self):
        self.service.change_status(self.e1, self.app.id, ApplicationStatus.REVIEWING)
        self.assertEqual(list(self.service.list_for(self.admin, status="REVIEWING")), [self.app])
        with self.assertRaises(InvalidTransition):
            self.service.list_for(self.admin, status="bogus")

    def test_unknown_role_cannot_list(self):
        with self.assertRaises(Denied):
            self.service.list_for(Principal(id=self.u1.id, role=""))


class DeleteApplicationTests(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.app = self.apply()
        self.key = self.key_of(self.app)

    def test_applicant_deletes_application_and_resume(self):
        self.service.delete(self.u1, self.app.id)
        self.assertFalse(JobApplication.objects.filter(pk=self.app.pk).exists())
        self.assertFalse(ApplicationStatusEvent.objects.filter(application_id=self.app.pk).exists())
        self.assertFalse(self.blobs.exists(self.key))
        with self.assertRaises(NotFound):
            self.service.get(self.admin, self.app.id)

    def test_owner_employer_can_delete(self):
        self.service.delete(self.e1, self.app.id)
        self.assertFalse(JobApplication.objects.filter(pk=self.app.pk).exists())

    def test_non_owner_employer_is_denied(self):
        with self.assertRaises(Denied):
            self.service.delete(self.e2, self.app.id)
        self.assertTrue(JobApplication.objects.filter(pk=self.app.pk).exists())
        self.assertTrue(self.blobs.exists(self.key))

    def test_record_is_deleted_even_if_resume_delete_fails(self):
        self.blobs.fail_deletes = True
        self.service.delete(self.u1, self.app.id)
        self.assertFalse(JobApplication.objects.filter(pk=self.app.pk).exists())
        self.assertTrue(self.blobs.exists(self.key))

    def test_missing_resume_file_does_not_block_delete(self):
        del self.blobs.blobs[self.key]
        self.service.delete(self.admin, self.app.id)
        self.assertFalse(JobApplication.objects.filter(pk=self.app.pk).exists())

    def test_deleting_twice_is_not_found(self):
        self.service.delete(self.u1, self.app.id)
        with self.assertRaises(NotFound):
            self.service.delete(self.u1, self.app.id)


class ApplicationScenarioTests(LifecycleTestCase):
    def test_apply_review_reject_outsider_then_withdraw(self):
        app = self.apply()
        self.assertEqual(app.status, ApplicationStatus.PENDING)
        self.assertEqual([(h["status"], h["changedBy"]) for h in StatusLedger(app).as_list()], [("PENDING", self.u1.id)])

        app = self.service.change_status(self.e1, app.id, ApplicationStatus.REVIEWING)
        history = StatusLedger(app).as_list()
        self.assertEqual(len(history), 2)
        self.assertEqual(history[1]["previousStatus"], "PENDING")

        with self.assertRaises(Denied):
            self.service.change_status(self.e2, app.id, ApplicationStatus.REVIEWING)

        key = self.key_of(app)
        self.service.delete(self.u1, app.id)
        self.assertFalse(self.blobs.exists(key))
        with self.assertRaises(NotFound):
            self.service.get(self.u1, app.id)


class JobServiceTests(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.jobs = JobService(assets=self.assets)

    def test_owner_posts_job(self):
        job = self.jobs.create(self.e1, self.company.id, title="QA Engineer", description="Testing", location="Leeds")
        self.assertEqual(job.company, self.company)
        self.assertEqual(job.posted_by_id, self.e1.id)
        self.assertEqual(job.status, JobStatus.DRAFT)

    def test_non_owner_cannot_post_job(self):
        with self.assertRaises(Denied):
            self.jobs.create(self.e2, self.company.id, title="QA", description="Testing", location="Leeds")
        with self.assertRaises(Denied):
            self.jobs.create(self.u1, self.company.id, title="QA", description="Testing", location="Leeds")

    def test_missing_company_is_not_found(self):
        with self.assertRaises(NotFound):
            self.jobs.create(self.e1, 99999, title="QA", description="Testing", location="Leeds")

    def test_salary_range_is_validated(self):
        with self.assertRaises(ValidationError):
            self.jobs.create(
                self.e1, self.company.id, title="QA", description="Testing", location="Leeds", min_salary=90000, max_salary=50000
            )

    def test_update_checks_company_owner(self):
        with self.assertRaises(Denied):
            self.jobs.update(self.e2, self.job.id, title="Hijacked")
        job = self.jobs.update(self.e1, self.job.id, title="Senior Backend Developer")
        job.refresh_from_db()
        self.assertEqual(job.title, "Senior Backend Developer")

    def test_closing_job_stops_applications(self):
        self.jobs.set_status(self.e1, self.job.id, JobStatus.CLOSED)
        with self.assertRaises(Conflict):
            self.apply()

    def test_unknown_job_status_is_invalid(self):
        with self.assertRaises(InvalidTransition):
            self.jobs.set_status(self.e1, self.job.id, "ARCHIVED")

    def test_delete_job_releases_application_resumes(self):
        app = self.apply()
        self.service.create(self.u2, self.job.id, self.resume())
        self.jobs.delete(self.e1, self.job.id)

        self.assertFalse(Job.objects.filter(pk=self.job.pk).exists())
        self.assertFalse(JobApplication.objects.filter(pk=app.pk).exists())
        self.assertEqual(self.blobs.blobs, {})

    def test_non_owner_cannot_delete_job(self):
        with self.assertRaises(Denied):
            self.jobs.delete(self.e2, self.job.id)
        self.assertTrue(Job.objects.filter(pk=self.job.pk).exists())


class SeedDemoDataTests(TestCase):
    def test_seed_creates_consistent_applications(self):
        out = StringIO()
        call_command("seed_demo_data", "--employers=2", "--jobseekers=3", "--jobs-per-employer=2", stdout=out)

        self.assertIn("Seeded demo data successfully.", out.getvalue())
        self.assertEqual(Company.objects.filter(slug__startswith="demo-").count(), 2)
        self.assertEqual(Job.objects.open().count(), 4)
        applications = JobApplication.objects.all()
        self.assertEqual(applications.count(), 6)
        for application in applications:
            self.assertTrue(StatusLedger(application).is_consistent())
            self.assertEqual(StatusLedger(application).entries()[0].changed_by_id, application.applicant_id)

    def test_seed_with_wipe_is_repeatable(self):
        call_command("seed_demo_data", "--employers=1", "--jobseekers=2", "--jobs-per-employer=2", stdout=StringIO())
        call_command(
            "seed_demo_data", "--employers=1", "--jobseekers=2", "--jobs-per-employer=2", "--wipe", stdout=StringIO()
        )
        self.assertEqual(User.objects.filter(username__startswith="demo_").count(), 4)
        self.assertEqual(JobApplication.objects.count(), 4)


class ApplicantRoleTests(LifecycleTestCase):
    def test_admin_cannot_apply_for_an_employer(self):
        with self.assertRaises(Denied):
            self.apply(actor=self.admin, applicant_id=self.e2.id)
        self.assertFalse(JobApplication.objects.exists())
        self.assertEqual(self.blobs.blobs, {})

    def test_admin_cannot_apply_for_another_admin_or_itself(self):
        other_admin = User.objects.create_user(username="admin2", password="pass", role="admin", email="admin2@example.com")
        with self.assertRaises(Denied):
            self.apply(actor=self.admin, applicant_id=other_admin.pk)
        with self.assertRaises(Denied):
            self.apply(actor=self.admin)
        self.assertFalse(JobApplication.objects.exists())


class ApplicationFilterTests(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.u1_user.first_name = "Alice"
        self.u1_user.save(update_fields=["first_name"])
        self.u2_user.first_name = "Bob"
        self.u2_user.save(update_fields=["first_name"])
        designer = Job.objects.create(
            company=self.company, title="Product Designer", description="Figma", location="Leeds", status=JobStatus.OPEN
        )
        self.backend_app = self.apply()
        self.design_app = self.service.create(self.u2, designer.id, self.resume())

        now = timezone.now()
        JobApplication.objects.filter(pk=self.backend_app.pk).update(applied_at=now - timedelta(days=10))
        JobApplication.objects.filter(pk=self.design_app.pk).update(applied_at=now - timedelta(days=1))
        self.now = now

    def test_search_matches_applicant_name_or_job_title(self):
        self.assertEqual(list(self.service.list_for(self.e1, search="alice")), [self.backend_app])
        self.assertEqual(list(self.service.list_for(self.e1, search="DESIGNER")), [self.design_app])
        self.assertEqual(list(self.service.list_for(self.e1, search="nobody")), [])

    def test_search_stays_within_visible_rows(self):
        self.assertEqual(list(self.service.list_for(self.u1, search="Designer")), [])

    def test_applied_range_with_dates(self):
        since = (self.now - timedelta(days=3)).date()
        self.assertEqual(list(self.service.list_for(self.e1, applied_from=since)), [self.design_app])
        self.assertEqual(list(self.service.list_for(self.e1, applied_to=since)), [self.backend_app])

    def test_applied_range_with_iso_strings(self):
        since = (self.now - timedelta(days=11)).isoformat()
        until = (self.now - timedelta(days=5)).isoformat()
        self.assertEqual(
            list(self.service.list_for(self.admin, applied_from=since, applied_to=until)), [self.backend_app]
        )

    def test_invalid_date_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.list_for(self.admin, applied_from="last tuesday")


class StoreFailureTests(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.app = self.apply()

    def test_failed_history_insert_rolls_back_status(self):
        with mock.patch.object(ApplicationStatusEvent.objects, "create", side_effect=IntegrityError("boom")):
            with self.assertRaises(InternalError):
                self.service.change_status(self.e1, self.app.id, ApplicationStatus.REVIEWING)

        self.app.refresh_from_db()
        self.assertEqual(self.app.status, ApplicationStatus.PENDING)
        self.assertIsNone(self.app.responded_at)
        self.assertEqual(self.app.version, 1)
        self.assertEqual(len(StatusLedger(self.app)), 1)

    def test_permanent_integrity_error_is_not_retried(self):
        calls = []
        real = transitions.apply_transition

        def counting(*args, **kwargs):
            calls.append(1)
            return real(*args, **kwargs)

        with mock.patch("jobs.services.apply_transition", side_effect=counting):
            with mock.patch.object(ApplicationStatusEvent.objects, "create", side_effect=IntegrityError("boom")):
                with self.assertRaises(InternalError):
                    self.service.change_status(self.e1, self.app.id, ApplicationStatus.REVIEWING)
        self.assertEqual(len(calls), 1)

    def test_store_error_on_create_releases_resume(self):
        with mock.patch.object(JobApplication.objects, "create", side_effect=DatabaseError("disk full")):
            with self.assertRaises(InternalError) as ctx:
                self.service.create(self.u2, self.job.id, self.resume())
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.message, "Internal error")
        self.assertEqual(list(self.blobs.blobs), [self.key_of(self.app)])

    def test_store_error_on_delete_keeps_record_and_file(self):
        with mock.patch("django.db.models.query.QuerySet.delete", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(InternalError):
                self.service.delete(self.u1, self.app.id)
        self.assertTrue(JobApplication.objects.filter(pk=self.app.pk).exists())
        self.assertTrue(self.blobs.exists(self.key_of(self.app)))

    def test_store_error_on_read_is_internal_error(self):
        with mock.patch("jobs.ownership._first", side_effect=DatabaseError("connection lost")):
            with self.assertRaises(InternalError):
                self.service.get(self.u1, self.app.id)


class JobReadTests(LifecycleTestCase):
    def setUp(self):
        super().setUp()
        self.jobs = JobService(assets=self.assets)
        self.rival_job = Job.objects.create(
            company=Company.objects.get(slug="rival"),
            title="Data Analyst",
            description="SQL and dashboards",
            location="Leeds",
            job_type="contract",
            experience_level="senior",
        )

    def test_get_job(self):
        job = self.jobs.get(self.job.id)
        self.assertEqual(job, self.job)
        self.assertEqual(job.company.name, "ACME")

    def test_get_missing_job(self):
        with self.assertRaises(NotFound):
            self.jobs.get(99999)
        with self.assertRaises(NotFound):
            self.jobs.get("not-an-id")

    def test_list_filters(self):
        self.assertEqual(set(self.jobs.list()), {self.job, self.rival_job})
        self.assertEqual(list(self.jobs.list(status=JobStatus.OPEN)), [self.job])
        self.assertEqual(list(self.jobs.list(job_type="contract")), [self.rival_job])
        self.assertEqual(list(self.jobs.list(experience_level="senior")), [self.rival_job])
        self.assertEqual(list(self.jobs.list(company_id=self.company.id)), [self.job])

    def test_list_search_covers_title_description_and_company(self):
        self.assertEqual(list(self.jobs.list(search="backend")), [self.job])
        self.assertEqual(list(self.jobs.list(search="dashboards")), [self.rival_job])
        self.assertEqual(list(self.jobs.list(search="rival")), [self.rival_job])

    def test_list_rejects_unknown_status(self):
        with self.assertRaises(InvalidTransition):
            self.jobs.list(status="ARCHIVED")


class ApplicationAdminTests(TestCase):
    def test_admin_is_view_only(self):
        superuser = User.objects.create_superuser(username="root", password="pass", email="root@example.com")
        request = RequestFactory().get("/admin/jobs/jobapplication/")
        request.user = superuser
        model_admin = admin.site._registry[JobApplication]

        self.assertTrue(model_admin.has_view_permission(request))
        self.assertFalse(model_admin.has_add_permission(request))
        self.assertFalse(model_admin.has_change_permission(request))
        self.assertFalse(model_admin.has_delete_permission(request))
