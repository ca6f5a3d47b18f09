"""In-memory blob store for tests, with switchable failures."""

import uuid
from pathlib import PurePosixPath

from .storage import BlobNotFound, BlobStoreError, StoredBlob


class InMemoryBlobStore:
    def __init__(self, base_url="/media/", *, fail_uploads=False, fail_deletes=False):
        self.base_url = base_url.rstrip("/") + "/"
        self.fail_uploads = fail_uploads
        self.fail_deletes = fail_deletes
        self.blobs = {}
        self.deleted = []

    def upload(self, file, folder):
        if self.fail_uploads:
            raise BlobStoreError("upload refused")
        key = f"{folder}/{uuid.uuid4().hex}"
        ext = PurePosixPath(file.name).suffix.lower()
        self.blobs[key] = file.read()
        return StoredBlob(url=f"{self.base_url}{key}{ext}", key=key)

    def exists(self, key):
        return key in self.blobs

    def delete(self, key):
        if self.fail_deletes:
            raise BlobStoreError("delete refused")
        if key not in self.blobs:
            raise BlobNotFound(key)
        del self.blobs[key]
        self.deleted.append(key)
