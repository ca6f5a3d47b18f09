"""The signed-in user's own profile: details, avatar, account removal."""

import logging

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from jobs.exceptions import Conflict, Denied, NotFound, translate_store_errors
from jobs.models import JobApplication
from resumes.assets import avatar_assets, logo_assets, resume_assets

from .models import User

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "email")


def _check_avatar(file):
    content_type = getattr(file, "content_type", "") or ""
    if not content_type.startswith("image/"):
        raise ValidationError("Avatar must be an image", code="invalid_type")


class ProfileService:
    def __init__(self, avatars=None, logos=None, resumes=None):
        self.avatars = avatars if avatars is not None else avatar_assets()
        self.logos = logos if logos is not None else logo_assets()
        self.resumes = resumes if resumes is not None else resume_assets()

    def _load(self, actor) -> User:
        with translate_store_errors("load profile"):
            user = User.objects.filter(pk=actor.id).first()
        if user is None:
            raise NotFound("User not found")
        return user

    def get(self, actor) -> User:
        return self._load(actor)

    def update(self, actor, *, avatar=None, password=None, **fields) -> User:
        """Change name fields, email (needs the current password) and/or the avatar."""
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise TypeError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        user = self._load(actor)

        email = fields.get("email")
        if email and email != user.email:
            if User.objects.filter(email__iexact=email).exclude(pk=user.pk).exists():
                raise Conflict("Email already in use")
            if not password:
                raise ValidationError("Password is required", code="password_required")
            if not user.check_password(password):
                raise Denied("Incorrect password")
        if avatar is not None:
            _check_avatar(avatar)

        def commit(ref=None):
            old_url = user.avatar_url
            for field, value in fields.items():
                setattr(user, field, value)
            update_fields = list(fields)
            if ref is not None:
                user.avatar_url = ref.url
                update_fields.append("avatar_url")
            if update_fields:
                try:
                    with translate_store_errors("update profile"), transaction.atomic():
                        user.save(update_fields=update_fields)
                except IntegrityError as exc:
                    raise Conflict("Email already in use") from exc
            return old_url

        if avatar is not None:
            self.avatars.replace(avatar, commit)
        else:
            commit()
        logger.info("Profile updated: user_id=%s fields=%s", user.pk, ",".join(sorted(fields)) or "-")
        return user

    def remove_avatar(self, actor) -> User:
        user = self._load(actor)
        old_url = user.avatar_url
        if old_url:
            user.avatar_url = None
            with translate_store_errors("remove avatar"):
                user.save(update_fields=["avatar_url"])
            self.avatars.release(old_url)
        return user

    def delete(self, actor, password) -> None:
        """Delete the account and, best effort, every file it leaves behind."""
        user = self._load(actor)
        if not password or not user.check_password(password):
            raise Denied("Incorrect password")

        # applications by the user and under companies it owns go with it
        resume_urls = list(
            JobApplication.objects.filter(applicant_id=user.pk).values_list("resume_url", flat=True)
        ) + list(JobApplication.objects.filter(job__company__owner_id=user.pk).values_list("resume_url", flat=True))
        logo_urls = list(user.companies.exclude(logo_url=None).values_list("logo_url", flat=True))

        with translate_store_errors("delete user"):
            User.objects.filter(pk=user.pk).delete()
        logger.info("User deleted: user_id=%s", user.pk)

        self.avatars.release(user.avatar_url)
        for url in logo_urls:
            self.logos.release(url)
        for url in set(resume_urls):
            self.resumes.release(url)
