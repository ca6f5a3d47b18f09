from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings

DEFAULT_MAX_IMAGE_SIZE = 5 * 1024 * 1024
DEFAULT_MAX_DOCUMENT_SIZE = 10 * 1024 * 1024


@dataclass(frozen=True)
class AssetStoreConfig:
    """Where uploaded files live and how large they may be."""

    location: str
    base_url: str
    folder: str = "applications"
    max_image_size: int = DEFAULT_MAX_IMAGE_SIZE
    max_document_size: int = DEFAULT_MAX_DOCUMENT_SIZE

    @classmethod
    def from_settings(cls, folder: str | None = None) -> "AssetStoreConfig":
        conf = getattr(settings, "RESUME_STORAGE", {}) or {}
        return cls(
            location=str(conf.get("LOCATION") or settings.MEDIA_ROOT),
            base_url=conf.get("BASE_URL") or settings.MEDIA_URL,
            folder=folder or conf.get("FOLDER", "applications"),
            max_image_size=int(conf.get("MAX_IMAGE_SIZE", DEFAULT_MAX_IMAGE_SIZE)),
            max_document_size=int(conf.get("MAX_DOCUMENT_SIZE", DEFAULT_MAX_DOCUMENT_SIZE)),
        )
