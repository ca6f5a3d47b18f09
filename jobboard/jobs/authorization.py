"""Role-based decision table for every mutation in the core.

``authorize`` is a pure function: it looks only at the actor, the action and
the ownership chain handed to it, and never touches the database. The chain is
anything exposing ``owner_id`` (the user owning the company at the top of the
chain) and ``applicant_id`` (the user the application belongs to, or will
belong to on create); either may be ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from accounts.models import User

from .exceptions import Denied

Role = User.Role


class Action(Enum):
    CREATE_APPLICATION = "create_application"
    READ_APPLICATION = "read_application"
    LIST_APPLICATIONS = "list_applications"
    UPDATE_APPLICATION_STATUS = "update_application_status"
    UPDATE_APPLICANT_FIELDS = "update_applicant_fields"
    DELETE_APPLICATION = "delete_application"
    CREATE_COMPANY = "create_company"
    UPDATE_COMPANY = "update_company"
    DELETE_COMPANY = "delete_company"
    CREATE_JOB = "create_job"
    UPDATE_JOB = "update_job"
    UPDATE_JOB_STATUS = "update_job_status"
    DELETE_JOB = "delete_job"


class Rule(Enum):
    ALLOW = "allow"
    DENY = "deny"
    IF_OWNER = "if_owner"
    IF_APPLICANT = "if_applicant"


_ADMIN_ONLY_ELSE_OWNER = {Role.ADMIN: Rule.ALLOW, Role.EMPLOYER: Rule.IF_OWNER, Role.JOB_SEEKER: Rule.DENY}

DECISION_TABLE: dict[Action, dict[str, Rule]] = {
    Action.CREATE_APPLICATION: {Role.ADMIN: Rule.ALLOW, Role.EMPLOYER: Rule.DENY, Role.JOB_SEEKER: Rule.IF_APPLICANT},
    Action.READ_APPLICATION: {Role.ADMIN: Rule.ALLOW, Role.EMPLOYER: Rule.IF_OWNER, Role.JOB_SEEKER: Rule.IF_APPLICANT},
    Action.LIST_APPLICATIONS: {Role.ADMIN: Rule.ALLOW, Role.EMPLOYER: Rule.ALLOW, Role.JOB_SEEKER: Rule.ALLOW},
    Action.UPDATE_APPLICATION_STATUS: dict(_ADMIN_ONLY_ELSE_OWNER),
    Action.UPDATE_APPLICANT_FIELDS: {Role.ADMIN: Rule.ALLOW, Role.EMPLOYER: Rule.DENY, Role.JOB_SEEKER: Rule.IF_APPLICANT},
    Action.DELETE_APPLICATION: {Role.ADMIN: Rule.ALLOW, Role.EMPLOYER: Rule.IF_OWNER, Role.JOB_SEEKER: Rule.IF_APPLICANT},
    Action.CREATE_COMPANY: {Role.ADMIN: Rule.ALLOW, Role.EMPLOYER: Rule.ALLOW, Role.JOB_SEEKER: Rule.DENY},
    Action.UPDATE_COMPANY: dict(_ADMIN_ONLY_ELSE_OWNER),
    Action.DELETE_COMPANY: dict(_ADMIN_ONLY_ELSE_OWNER),
    Action.CREATE_JOB: dict(_ADMIN_ONLY_ELSE_OWNER),
    Action.UPDATE_JOB: dict(_ADMIN_ONLY_ELSE_OWNER),
    Action.UPDATE_JOB_STATUS: dict(_ADMIN_ONLY_ELSE_OWNER),
    Action.DELETE_JOB: dict(_ADMIN_ONLY_ELSE_OWNER),
}

# Message used when a role is matched but fails its ownership predicate.
_PREDICATE_REASONS = {
    Action.CREATE_APPLICATION: "You can only apply on your own behalf",
    Action.READ_APPLICATION: "You can only view your own applications or applications for your own company",
    Action.UPDATE_APPLICATION_STATUS: "You can only update applications for your own company",
    Action.UPDATE_APPLICANT_FIELDS: "You can only update your own application",
    Action.DELETE_APPLICATION: "You can only delete your own applications or applications for your own company",
    Action.UPDATE_COMPANY: "Only admin and company owner can update companies",
    Action.DELETE_COMPANY: "Only admin and company owner can delete companies",
    Action.CREATE_JOB: "You can only post jobs for your own company",
    Action.UPDATE_JOB: "Only admin and company owners can update jobs",
    Action.UPDATE_JOB_STATUS: "Only admin and company owners can update a job's status",
    Action.DELETE_JOB: "Only admin and company owners can delete jobs",
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = Decision(True)


def _role_of(actor):
    try:
        return Role(actor.role)
    except ValueError:
        return None


def authorize(actor, action: Action, chain=None) -> Decision:
    role = _role_of(actor)
    if role is None:
        return Decision(False, "Unknown role is not allowed to do this action")

    rule = DECISION_TABLE[action][role]
    if rule is Rule.ALLOW:
        return ALLOWED
    if rule is Rule.DENY:
        return Decision(False, f"{role.label} is not allowed to do this action")

    if rule is Rule.IF_OWNER:
        subject_id = getattr(chain, "owner_id", None)
    else:
        subject_id = getattr(chain, "applicant_id", None)
    if subject_id is not None and subject_id == actor.id:
        return ALLOWED
    return Decision(False, _PREDICATE_REASONS.get(action, "You do not have permission to do this action"))


def ensure_allowed(actor, action: Action, chain=None) -> None:
    decision = authorize(actor, action, chain)
    if not decision:
        raise Denied(decision.reason)
