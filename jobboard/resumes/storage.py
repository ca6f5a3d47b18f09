"""Blob store adapter over a Django ``Storage`` backend.

Files are saved as ``<folder>/<random hex><ext>``. The key of a blob is its
storage name without the extension, which is also what can be recovered from
its public URL.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import PurePosixPath

from django.core.files.storage import FileSystemStorage

from .validators import ALLOWED_EXTENSIONS, validate_resume_file

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    pass


class BlobNotFound(BlobStoreError):
    pass


@dataclass(frozen=True)
class StoredBlob:
    url: str
    key: str


def key_for_name(name: str) -> str:
    path = PurePosixPath(name)
    return str(path.parent / path.name.split(".", 1)[0])


class StorageBlobStore:
    def __init__(self, storage, *, max_image_size=None, max_document_size=None):
        self.storage = storage
        self._limits = {}
        if max_image_size is not None:
            self._limits["max_image_size"] = max_image_size
        if max_document_size is not None:
            self._limits["max_document_size"] = max_document_size

    @classmethod
    def from_config(cls, config) -> "StorageBlobStore":
        storage = FileSystemStorage(location=config.location, base_url=config.base_url)
        return cls(storage, max_image_size=config.max_image_size, max_document_size=config.max_document_size)

    def upload(self, file, folder: str) -> StoredBlob:
        validate_resume_file(file, **self._limits)
        ext = PurePosixPath(file.name).suffix.lower()
        try:
            saved = self.storage.save(f"{folder}/{uuid.uuid4().hex}{ext}", file)
        except OSError as exc:
            raise BlobStoreError(f"Could not store {file.name!r}") from exc
        return StoredBlob(url=self.storage.url(saved), key=key_for_name(saved))

    def _find(self, key: str) -> str | None:
        # uploads are validated, so the extension is one of a handful
        for ext in ALLOWED_EXTENSIONS:
            if self.storage.exists(f"{key}{ext}"):
                return f"{key}{ext}"
        return None

    def exists(self, key: str) -> bool:
        return self._find(key) is not None

    def delete(self, key: str) -> None:
        name = self._find(key)
        if name is None:
            raise BlobNotFound(key)
        try:
            self.storage.delete(name)
        except OSError as exc:
            raise BlobStoreError(f"Could not delete {key!r}") from exc
