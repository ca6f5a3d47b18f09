import tempfile
from unittest import mock

from django.core.exceptions import ValidationError
from django.core.files.storage import FileSystemStorage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase

from jobs.exceptions import AssetFailure

from .assets import AssetManager
from .config import AssetStoreConfig
from .storage import BlobNotFound, StorageBlobStore, StoredBlob
from .testing import InMemoryBlobStore
from .validators import validate_resume_file


def pdf(name="cv.pdf", content=b"%PDF-1.4 resume"):
    return SimpleUploadedFile(name, content, content_type="application/pdf")


class ValidateResumeFileTests(SimpleTestCase):
    def assertRejected(self, file, code, **limits):
        with self.assertRaises(ValidationError) as ctx:
            validate_resume_file(file, **limits)
        self.assertEqual(ctx.exception.code, code)

    def test_accepts_documents_and_images(self):
        validate_resume_file(pdf())
        validate_resume_file(SimpleUploadedFile("me.JPG", b"\xff\xd8\xff", content_type="image/jpeg"))
        validate_resume_file(
            SimpleUploadedFile(
                "cv.docx",
                b"PK\x03\x04",
                content_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            )
        )

    def test_missing_file(self):
        self.assertRejected(None, "required")

    def test_empty_file(self):
        self.assertRejected(pdf(content=b""), "empty")

    def test_unknown_type(self):
        self.assertRejected(SimpleUploadedFile("cv.exe", b"MZ", content_type="application/x-msdownload"), "invalid_type")

    def test_unknown_extension(self):
        self.assertRejected(pdf(name="cv.exe"), "invalid_extension")

    def test_extension_must_match_type(self):
        self.assertRejected(pdf(name="cv.png"), "type_mismatch")

    def test_size_limits_depend_on_kind(self):
        self.assertRejected(pdf(content=b"x" * 16), "too_large", max_document_size=8)
        image = SimpleUploadedFile("me.png", b"x" * 16, content_type="image/png")
        self.assertRejected(image, "too_large", max_image_size=8)
        validate_resume_file(image, max_image_size=8 * 1024, max_document_size=8)


class StorageBlobStoreTests(SimpleTestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.store = StorageBlobStore(FileSystemStorage(location=tmp.name, base_url="/media/"))

    def test_upload_then_delete(self):
        blob = self.store.upload(pdf(), "applications")

        self.assertTrue(blob.url.startswith("/media/applications/"))
        self.assertTrue(blob.url.endswith(".pdf"))
        self.assertTrue(blob.key.startswith("applications/"))
        self.assertNotIn(".", blob.key)
        self.assertTrue(self.store.exists(blob.key))

        self.store.delete(blob.key)
        self.assertFalse(self.store.exists(blob.key))

    def test_delete_missing_key(self):
        with self.assertRaises(BlobNotFound):
            self.store.delete("applications/deadbeef")

    def test_uploads_get_distinct_keys(self):
        first = self.store.upload(pdf(), "applications")
        second = self.store.upload(pdf(), "applications")
        self.assertNotEqual(first.key, second.key)

    def test_invalid_file_is_not_stored(self):
        with self.assertRaises(ValidationError):
            self.store.upload(pdf(content=b""), "applications")
        self.assertEqual(self.store.storage.listdir("")[0], [])


class StorageKeyFromUrlTests(SimpleTestCase):
    def setUp(self):
        self.assets = AssetManager(
            AssetStoreConfig(location="", base_url="https://cdn.example.com/media/"), blob_store=InMemoryBlobStore()
        )

    def test_absolute_url(self):
        self.assertEqual(
            self.assets.storage_key_from_url("https://cdn.example.com/media/applications/3f2a9c.pdf"),
            "applications/3f2a9c",
        )

    def test_relative_url_and_multiple_dots(self):
        self.assertEqual(self.assets.storage_key_from_url("/media/applications/3f2a9c.v2.pdf"), "applications/3f2a9c")

    def test_percent_encoded_url(self):
        self.assertEqual(self.assets.storage_key_from_url("/media/applications/my%20cv.pdf"), "applications/my cv")

    def test_url_outside_storage_base(self):
        with self.assertRaises(AssetFailure):
            self.assets.storage_key_from_url("https://elsewhere.example.com/static/applications/3f2a9c.pdf")

    def test_url_in_other_folder(self):
        with self.assertRaises(AssetFailure):
            self.assets.storage_key_from_url("/media/logos/3f2a9c.png")

    def test_ref_for_empty_url(self):
        self.assertIsNone(self.assets.ref_for(""))
        self.assertEqual(self.assets.ref_for("/media/applications/abc.pdf").key, "applications/abc")


class MisaddressingBlobStore(InMemoryBlobStore):
    def upload(self, file, folder):
        blob = super().upload(file, folder)
        return StoredBlob(url=f"{self.base_url}elsewhere/{blob.key.rpartition('/')[2]}.pdf", key=blob.key)


class AssetManagerTests(SimpleTestCase):
    def setUp(self):
        self.blobs = InMemoryBlobStore()
        self.assets = AssetManager(AssetStoreConfig(location="", base_url="/media/"), blob_store=self.blobs)

    def test_upload_returns_addressable_reference(self):
        ref = self.assets.upload(pdf())
        self.assertEqual(self.assets.storage_key_from_url(ref.url), ref.key)
        self.assertTrue(self.blobs.exists(ref.key))

    def test_upload_failure_is_asset_failure(self):
        self.blobs.fail_uploads = True
        with self.assertRaises(AssetFailure):
            self.assets.upload(pdf())

    def test_unaddressable_upload_is_discarded(self):
        blobs = MisaddressingBlobStore()
        assets = AssetManager(AssetStoreConfig(location="", base_url="/media/"), blob_store=blobs)
        with self.assertRaises(AssetFailure):
            assets.upload(pdf())
        self.assertEqual(blobs.blobs, {})

    def test_release_never_raises(self):
        ref = self.assets.upload(pdf())
        self.assertTrue(self.assets.release(ref.url))
        # already gone
        self.assertTrue(self.assets.release(ref.url))
        self.assertTrue(self.assets.release(None))
        self.assertFalse(self.assets.release("https://elsewhere.example.com/x.pdf"))

        other = self.assets.upload(pdf())
        self.blobs.fail_deletes = True
        self.assertFalse(self.assets.release(other.url))
        self.assertTrue(self.blobs.exists(other.key))

    def test_replace_commits_then_releases_old(self):
        old = self.assets.upload(pdf())
        new = self.assets.replace(pdf("new.pdf"), lambda ref: old.url)
        self.assertEqual(list(self.blobs.blobs), [new.key])

    def test_replace_releases_new_upload_when_commit_fails(self):
        old = self.assets.upload(pdf())

        def commit(ref):
            raise RuntimeError("write failed")

        with self.assertRaises(RuntimeError):
            self.assets.replace(pdf("new.pdf"), commit)
        self.assertEqual(list(self.blobs.blobs), [old.key])


class StorageLookupTests(SimpleTestCase):
    def test_delete_looks_up_by_extension_without_listing(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        store = StorageBlobStore(FileSystemStorage(location=tmp.name, base_url="/media/"))
        blob = store.upload(pdf(), "applications")
        for _ in range(3):
            store.upload(pdf(), "applications")

        with mock.patch.object(store.storage, "listdir", side_effect=AssertionError("folder listed")):
            self.assertTrue(store.exists(blob.key))
            store.delete(blob.key)
            self.assertFalse(store.exists(blob.key))
