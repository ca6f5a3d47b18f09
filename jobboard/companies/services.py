import logging

from django.db import IntegrityError, transaction
from django.db.models import Q, prefetch_related_objects

from jobs.authorization import Action, ensure_allowed
from jobs.exceptions import Conflict, translate_store_errors
from jobs.models import JobApplication
from jobs.ownership import resolve_company
from resumes.assets import logo_assets, resume_assets

from .models import Company

logger = logging.getLogger(__name__)

COMPANY_FIELDS = ("name", "slug", "email", "website", "industry", "description")


def _check_fields(fields):
    unknown = set(fields) - set(COMPANY_FIELDS)
    if unknown:
        raise TypeError(f"Unknown company fields: {', '.join(sorted(unknown))}")


class CompanyService:
    def __init__(self, logos=None, resumes=None):
        self.logos = logos if logos is not None else logo_assets()
        self.resumes = resumes if resumes is not None else resume_assets()

    def create(self, actor, *, logo=None, **fields) -> Company:
        ensure_allowed(actor, Action.CREATE_COMPANY)
        _check_fields(fields)
        if Company.objects.filter(slug=fields.get("slug")).exists():
            raise Conflict("Duplicated field: slug")

        logo_url = self.logos.upload(logo).url if logo is not None else None
        try:
            with translate_store_errors("create company"), transaction.atomic():
                company = Company.objects.create(owner_id=actor.id, logo_url=logo_url, **fields)
        except IntegrityError as exc:
            self.logos.release(logo_url)
            raise Conflict("Duplicated field: slug") from exc
        except Exception:
            self.logos.release(logo_url)
            raise
        logger.info("Company created: company_id=%s owner=%s", company.pk, actor.id)
        return company

    def get(self, company_id) -> Company:
        company = resolve_company(company_id).company
        with translate_store_errors("load company jobs"):
            prefetch_related_objects([company], "jobs")
        return company

    def list(self, *, search=None, industry=None, email=None, slug=None):
        qs = Company.objects.all()
        if industry:
            qs = qs.filter(industry__icontains=industry)
        if email:
            qs = qs.filter(email__iexact=email)
        if slug:
            qs = qs.filter(slug__icontains=slug)
        if search:
            qs = qs.filter(Q(name__icontains=search) | Q(description__icontains=search))
        return qs

    def update(self, actor, company_id, *, logo=None, **fields) -> Company:
        chain = resolve_company(company_id)
        ensure_allowed(actor, Action.UPDATE_COMPANY, chain)
        _check_fields(fields)
        company = chain.company

        def commit(ref=None):
            old_url = company.logo_url
            for field, value in fields.items():
                setattr(company, field, value)
            update_fields = list(fields)
            if ref is not None:
                company.logo_url = ref.url
                update_fields.append("logo_url")
            if update_fields:
                try:
                    with translate_store_errors("update company"), transaction.atomic():
                        company.save(update_fields=update_fields)
                except IntegrityError as exc:
                    raise Conflict("Duplicated field: slug") from exc
            return old_url

        if logo is not None:
            self.logos.replace(logo, commit)
        else:
            commit()
        logger.info("Company updated: company_id=%s by=%s", company.pk, actor.id)
        return company

    def delete(self, actor, company_id) -> None:
        chain = resolve_company(company_id)
        ensure_allowed(actor, Action.DELETE_COMPANY, chain)
        company = chain.company
        resume_urls = list(
            JobApplication.objects.filter(job__company_id=company.pk).values_list("resume_url", flat=True)
        )
        with translate_store_errors("delete company"):
            Company.objects.filter(pk=company.pk).delete()
        logger.info("Company deleted: company_id=%s applications=%s by=%s", company.pk, len(resume_urls), actor.id)
        self.logos.release(company.logo_url)
        for url in resume_urls:
            self.resumes.release(url)
