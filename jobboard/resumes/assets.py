"""Lifecycle of the file attached to an application (or a company logo).

The record holds only the file's public URL. The storage key is derived from
that URL: drop scheme and host, drop the storage base path, keep
``<folder>/<name>`` and cut the extension. ``storage_key_from_url`` is the
single place that knows this format.

Uploads are fatal when they fail. Deleting a file that a record no longer
points to is best effort: failures are logged and the caller carries on, at
the price of a possible orphan file in storage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from jobs.exceptions import AssetFailure

from .config import AssetStoreConfig
from .storage import BlobNotFound, BlobStoreError, StorageBlobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResumeRef:
    url: str
    key: str


class AssetManager:
    def __init__(self, config: AssetStoreConfig, blob_store=None):
        self.config = config
        self.blob_store = blob_store if blob_store is not None else StorageBlobStore.from_config(config)

    def storage_key_from_url(self, url: str) -> str:
        path = unquote(urlparse(url).path)
        base = urlparse(self.config.base_url).path.rstrip("/") + "/"
        if not path.startswith(base):
            raise AssetFailure(f"File URL is outside the storage base: {url}")
        relative = PurePosixPath(path[len(base):])
        stem = relative.name.split(".", 1)[0]
        if relative.parent.as_posix() != self.config.folder or not stem:
            raise AssetFailure(f"File URL does not belong to folder {self.config.folder!r}: {url}")
        return f"{self.config.folder}/{stem}"

    def ref_for(self, url: str | None) -> ResumeRef | None:
        if not url:
            return None
        return ResumeRef(url=url, key=self.storage_key_from_url(url))

    def upload(self, file) -> ResumeRef:
        try:
            blob = self.blob_store.upload(file, self.config.folder)
        except BlobStoreError as exc:
            logger.exception("Asset upload failed: folder=%s", self.config.folder)
            raise AssetFailure("Error uploading file") from exc

        try:
            key = self.storage_key_from_url(blob.url)
        except AssetFailure:
            self._discard(blob.key)
            raise
        if key != blob.key:
            logger.error("Asset key mismatch: derived=%s stored=%s url=%s", key, blob.key, blob.url)
            self._discard(blob.key)
            raise AssetFailure("Stored file cannot be addressed by its URL")

        logger.info("Asset uploaded: key=%s", key)
        return ResumeRef(url=blob.url, key=key)

    def replace(self, new_file, commit) -> ResumeRef:
        """Upload ``new_file``, persist it through ``commit``, then drop the old file.

        ``commit(new_ref)`` must save the new reference and return the URL it
        superseded (or ``None``). If it raises, the new upload is released and
        the error propagates; the old file is untouched. The old file is only
        deleted once the new reference is saved, and that delete is best
        effort.
        """
        new_ref = self.upload(new_file)
        try:
            old_url = commit(new_ref)
        except Exception:
            self.release(new_ref.url)
            raise
        if old_url and old_url != new_ref.url:
            self.release(old_url)
        return new_ref

    def release(self, url: str | None) -> bool:
        """Delete the file behind ``url``. Never raises; returns False on failure."""
        if not url:
            return True
        try:
            key = self.storage_key_from_url(url)
            self.blob_store.delete(key)
        except BlobNotFound:
            logger.warning("Asset already gone: url=%s", url)
            return True
        except Exception:
            logger.exception("Failed to delete asset, leaving orphan: url=%s", url)
            return False
        logger.info("Asset deleted: key=%s", key)
        return True

    def _discard(self, key: str) -> None:
        try:
            self.blob_store.delete(key)
        except Exception:
            logger.exception("Failed to discard unaddressable asset: key=%s", key)


def resume_assets(blob_store=None) -> AssetManager:
    return AssetManager(AssetStoreConfig.from_settings(), blob_store=blob_store)


def logo_assets(blob_store=None) -> AssetManager:
    return AssetManager(AssetStoreConfig.from_settings(folder="logos"), blob_store=blob_store)


def avatar_assets(blob_store=None) -> AssetManager:
    return AssetManager(AssetStoreConfig.from_settings(folder="avatars"), blob_store=blob_store)
