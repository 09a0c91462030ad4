"""
Report lifecycle state machine.

    draft -> submitted -> under-investigation -> resolved | rejected
    submitted -> resolved | rejected

Owners move their own drafts to ``submitted``; every later transition is an
admin action. ``resolved`` and ``rejected`` are terminal.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional

from ..errors import InvalidTransition, ValidationFailed


class ReportStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_INVESTIGATION = "under-investigation"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class ReportType(str, Enum):
    RED_FLAG = "red-flag"
    INTERVENTION = "intervention"


# Legacy spellings seen in older clients
STATUS_ALIASES: Dict[str, ReportStatus] = {
    "under investigation": ReportStatus.UNDER_INVESTIGATION,
    "under_investigation": ReportStatus.UNDER_INVESTIGATION,
    "underinvestigation": ReportStatus.UNDER_INVESTIGATION,
}

TYPE_ALIASES: Dict[str, ReportType] = {
    "red flag": ReportType.RED_FLAG,
    "red_flag": ReportType.RED_FLAG,
    "redflag": ReportType.RED_FLAG,
}

INITIAL_STATUSES: FrozenSet[ReportStatus] = frozenset({ReportStatus.DRAFT, ReportStatus.SUBMITTED})

TERMINAL_STATUSES: FrozenSet[ReportStatus] = frozenset({ReportStatus.RESOLVED, ReportStatus.REJECTED})

# Transitions an admin may trigger
ADMIN_TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    ReportStatus.DRAFT: frozenset(),
    ReportStatus.SUBMITTED: frozenset({
        ReportStatus.UNDER_INVESTIGATION,
        ReportStatus.RESOLVED,
        ReportStatus.REJECTED,
    }),
    ReportStatus.UNDER_INVESTIGATION: frozenset({
        ReportStatus.RESOLVED,
        ReportStatus.REJECTED,
    }),
    ReportStatus.RESOLVED: frozenset(),
    ReportStatus.REJECTED: frozenset(),
}

# Transitions an owner may trigger on their own report
OWNER_TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    ReportStatus.DRAFT: frozenset({ReportStatus.SUBMITTED}),
}


def normalize_status(value) -> ReportStatus:
    """Map a client-supplied status string onto the canonical enum."""
    if isinstance(value, ReportStatus):
        return value
    if not isinstance(value, str):
        raise ValidationFailed(f"Invalid status: {value!r}")
    key = value.strip().lower()
    if key in STATUS_ALIASES:
        return STATUS_ALIASES[key]
    try:
        return ReportStatus(key)
    except ValueError:
        allowed = ", ".join(s.value for s in ReportStatus)
        raise ValidationFailed(f"Invalid status '{value}'. Expected one of: {allowed}")


def normalize_type(value) -> ReportType:
    if isinstance(value, ReportType):
        return value
    if not isinstance(value, str):
        raise ValidationFailed(f"Invalid report type: {value!r}")
    key = value.strip().lower()
    if key in TYPE_ALIASES:
        return TYPE_ALIASES[key]
    try:
        return ReportType(key)
    except ValueError:
        raise ValidationFailed(f"Invalid report type '{value}'. Expected 'red-flag' or 'intervention'")


def initial_status(requested: Optional[str] = None) -> ReportStatus:
    """
    Status a new report starts in.

    Defaults to draft; a create request may ask for immediate submission.
    Anything else would skip the lifecycle and is rejected.
    """
    if requested is None:
        return ReportStatus.DRAFT
    status = normalize_status(requested)
    if status not in INITIAL_STATUSES:
        raise ValidationFailed(
            f"A new report can only start as 'draft' or 'submitted', not '{status.value}'"
        )
    return status


def is_terminal(status) -> bool:
    return normalize_status(status) in TERMINAL_STATUSES


def is_mutable_by_owner(status) -> bool:
    return normalize_status(status) == ReportStatus.DRAFT


def can_transition(current, target, as_admin: bool, as_owner: bool = False) -> bool:
    """
    An admin follows the admin table; the report's owner follows the owner
    table. An admin who owns the report gets both.
    """
    current = normalize_status(current)
    target = normalize_status(target)
    allowed = set()
    if as_admin:
        allowed |= ADMIN_TRANSITIONS.get(current, frozenset())
    if as_owner or not as_admin:
        allowed |= OWNER_TRANSITIONS.get(current, frozenset())
    return target in allowed


def ensure_transition(current, target, as_admin: bool, as_owner: bool = False) -> ReportStatus:
    """
    Validate a transition and return the target status.

    Raises:
        InvalidTransition: target is not reachable from current for this kind of actor
    """
    current_status = normalize_status(current)
    target_status = normalize_status(target)
    if not can_transition(current_status, target_status, as_admin, as_owner=as_owner):
        if current_status in TERMINAL_STATUSES:
            raise InvalidTransition(
                current_status.value,
                target_status.value,
                message=f"Report is already '{current_status.value}'; no further status changes are allowed",
            )
        if as_admin and not as_owner and current_status == ReportStatus.DRAFT:
            raise InvalidTransition(
                current_status.value,
                target_status.value,
                message="Draft reports must be submitted by their owner before an admin can act on them",
            )
        raise InvalidTransition(current_status.value, target_status.value)
    return target_status
