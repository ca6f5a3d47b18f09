"""Load the Company → Job → Application chain an authorization needs."""

from __future__ import annotations

from dataclasses import dataclass

from companies.models import Company

from .exceptions import NotFound, translate_store_errors
from .models import Job, JobApplication


@dataclass(frozen=True)
class ApplicationChain:
    application: JobApplication
    job: Job
    owner_id: int

    @property
    def applicant_id(self) -> int:
        return self.application.applicant_id


@dataclass(frozen=True)
class JobChain:
    job: Job
    owner_id: int
    # set when the chain is built for a prospective application
    applicant_id: int | None = None


@dataclass(frozen=True)
class CompanyChain:
    company: Company
    owner_id: int
    applicant_id: None = None


def _first(queryset, pk):
    try:
        return queryset.filter(pk=pk).first()
    except (TypeError, ValueError):
        # malformed id, treated like a missing row
        return None


def resolve_application(application_id) -> ApplicationChain:
    # single joined read so existence and ownership come from the same row
    with translate_store_errors("resolve application"):
        application = _first(JobApplication.objects.with_chain(), application_id)
    if application is None:
        raise NotFound("Application not found")
    job = application.job
    return ApplicationChain(application=application, job=job, owner_id=job.company.owner_id)


def resolve_job(job_id, applicant_id=None) -> JobChain:
    with translate_store_errors("resolve job"):
        job = _first(Job.objects.select_related("company"), job_id)
    if job is None:
        raise NotFound("Job not found")
    return JobChain(job=job, owner_id=job.company.owner_id, applicant_id=applicant_id)


def resolve_company(company_id) -> CompanyChain:
    with translate_store_errors("resolve company"):
        company = _first(Company.objects.all(), company_id)
    if company is None:
        raise NotFound("Company not found")
    return CompanyChain(company=company, owner_id=company.owner_id)
