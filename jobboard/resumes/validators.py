import mimetypes
from pathlib import PurePosixPath

from django.core.exceptions import ValidationError

from .config import DEFAULT_MAX_DOCUMENT_SIZE, DEFAULT_MAX_IMAGE_SIZE

# mime type -> extensions it may carry
ALLOWED_TYPES = {
    "image/jpeg": (".jpg", ".jpeg"),
    "image/png": (".png",),
    "image/webp": (".webp",),
    "application/pdf": (".pdf",),
    "application/msword": (".doc",),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": (".docx",),
}
ALLOWED_EXTENSIONS = sorted({ext for exts in ALLOWED_TYPES.values() for ext in exts})


def validate_resume_file(file, *, max_image_size=DEFAULT_MAX_IMAGE_SIZE, max_document_size=DEFAULT_MAX_DOCUMENT_SIZE):
    """Reject empty, oversized or mislabelled uploads before they reach storage."""
    if file is None:
        raise ValidationError("No file uploaded", code="required")
    if not getattr(file, "size", 0):
        raise ValidationError("File is empty", code="empty")

    name = getattr(file, "name", "") or ""
    ext = PurePosixPath(name).suffix.lower()
    content_type = getattr(file, "content_type", None) or mimetypes.guess_type(name)[0]

    if content_type not in ALLOWED_TYPES:
        raise ValidationError(
            "Invalid file type. Allowed types: %(allowed)s",
            code="invalid_type",
            params={"allowed": ", ".join(ALLOWED_TYPES)},
        )
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            "Invalid file extension. Allowed extensions: %(allowed)s",
            code="invalid_extension",
            params={"allowed": ", ".join(ALLOWED_EXTENSIONS)},
        )
    if ext not in ALLOWED_TYPES[content_type]:
        raise ValidationError("File extension does not match file type", code="type_mismatch")

    max_size = max_image_size if content_type.startswith("image/") else max_document_size
    if file.size > max_size:
        raise ValidationError(
            "File too large. Maximum size: %(mb)s MB",
            code="too_large",
            params={"mb": max_size // (1024 * 1024)},
        )
