"""
Access control for reports.

Single decision point reused by every report operation. The checks are pure
functions of (actor, report); authentication has already happened by the
time any of them is called.

- read: admin, or the report's owner
- write (update/delete): admin at any status, or the owner while the report is a draft
- create: any authenticated actor; ownership is always the actor
- change status: admin only (transition legality lives in lifecycle)
"""
from typing import Any

from ..errors import Forbidden
from .lifecycle import is_mutable_by_owner

ADMIN_ROLE = "admin"
USER_ROLE = "user"


def is_admin(actor: Any) -> bool:
    return getattr(actor, "role", None) == ADMIN_ROLE


def is_owner(actor: Any, report: Any) -> bool:
    return str(actor.id) == str(report.created_by)


def can_read(actor: Any, report: Any) -> bool:
    return is_admin(actor) or is_owner(actor, report)


def can_write(actor: Any, report: Any) -> bool:
    if is_admin(actor):
        return True
    return is_owner(actor, report) and is_mutable_by_owner(report.status)


def can_create(actor: Any) -> bool:
    return actor is not None


def can_change_status(actor: Any, report: Any) -> bool:
    return is_admin(actor)


def can_view_user(actor: Any, user_id: Any) -> bool:
    """Admins see everyone; users only themselves."""
    return is_admin(actor) or str(actor.id) == str(user_id)


def authorize_read(actor: Any, report: Any) -> None:
    if not can_read(actor, report):
        raise Forbidden("You do not have access to this report")


def authorize_write(actor: Any, report: Any) -> None:
    if not can_write(actor, report):
        if is_owner(actor, report):
            raise Forbidden("Only draft reports can be changed by their owner")
        raise Forbidden("You do not have access to this report")


def authorize_change_status(actor: Any, report: Any) -> None:
    if not can_change_status(actor, report):
        raise Forbidden("Admin access required")


def authorize_view_user(actor: Any, user_id: Any) -> None:
    if not can_view_user(actor, user_id):
        raise Forbidden("You can only view your own account")
