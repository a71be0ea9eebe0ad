"""Record-level authorization: who may act on which school, class, user or record.

Route dependencies (see rbac.require_roles) decide which roles may reach an
endpoint at all; this module decides whether a given caller may act on a given
row. Every service calls ``authorize`` instead of re-deriving the rules.
"""

from enum import Enum
from typing import Optional, Union

from fastapi import status

from school_api.auth.models import User
from school_api.auth.schemas import CurrentUser
from school_api.core.enums import UserRole
from school_api.core.exceptions import ServiceError
from school_api.core.models import Attendance, Result, School, SchoolClass


class Action(str, Enum):
    VIEW = "view"
    # Admin create/update/delete of the entity itself
    MANAGE = "manage"
    # Teacher records attendance or results against a class
    RECORD = "record"
    # Update or delete an attendance/result record
    MODIFY = "modify"


Resource = Union[School, SchoolClass, Attendance, Result, User]


def teaches(actor: CurrentUser, school_class: Optional[SchoolClass]) -> bool:
    return (
        actor.role == UserRole.TEACHER
        and school_class is not None
        and actor.id in school_class.teacher_ids()
    )


def _same_school(actor: CurrentUser, school_id) -> bool:
    return actor.school_id is not None and actor.school_id == school_id


def _school_allowed(actor: CurrentUser, action: Action, school: School) -> bool:
    if actor.role == UserRole.SUPER_ADMIN:
        return True
    if actor.role == UserRole.SCHOOL_ADMIN:
        return _same_school(actor, school.id)
    return action == Action.VIEW and _same_school(actor, school.id)


def _class_allowed(actor: CurrentUser, action: Action, school_class: SchoolClass) -> bool:
    if action == Action.RECORD:
        return teaches(actor, school_class)
    if actor.role == UserRole.SUPER_ADMIN:
        return True
    if actor.role == UserRole.SCHOOL_ADMIN:
        return _same_school(actor, school_class.school_id)
    if action == Action.VIEW:
        return teaches(actor, school_class)
    return False


def _record_allowed(
    actor: CurrentUser,
    action: Action,
    record: Union[Attendance, Result],
    school_class: Optional[SchoolClass],
) -> bool:
    author_id = record.marked_by if isinstance(record, Attendance) else record.teacher_id
    if actor.role == UserRole.SCHOOL_ADMIN:
        return _same_school(actor, record.school_id)
    if actor.role == UserRole.TEACHER:
        if author_id == actor.id:
            return True
        # Teaching the class is enough to read a record, never to change it
        return action == Action.VIEW and teaches(actor, school_class)
    if actor.role == UserRole.STUDENT and action == Action.VIEW:
        if record.student_id != actor.id:
            return False
        return record.is_published if isinstance(record, Result) else True
    return False


def _user_allowed(
    actor: CurrentUser,
    action: Action,
    user: User,
    school_class: Optional[SchoolClass],
) -> bool:
    if actor.role == UserRole.SUPER_ADMIN:
        return True
    if actor.role == UserRole.SCHOOL_ADMIN:
        return _same_school(actor, user.school_id) and user.role != UserRole.SUPER_ADMIN
    if action != Action.VIEW:
        return False
    if user.id == actor.id:
        return True
    if actor.role == UserRole.TEACHER:
        if user.role == UserRole.STUDENT:
            return teaches(actor, school_class)
        return _same_school(actor, user.school_id)
    return False


def is_allowed(
    actor: CurrentUser,
    action: Action,
    resource: Resource,
    *,
    school_class: Optional[SchoolClass] = None,
) -> bool:
    """``school_class`` is the class a record or student belongs to, needed for teacher rules."""
    if isinstance(resource, School):
        return _school_allowed(actor, action, resource)
    if isinstance(resource, SchoolClass):
        return _class_allowed(actor, action, resource)
    if isinstance(resource, (Attendance, Result)):
        return _record_allowed(actor, action, resource, school_class)
    if isinstance(resource, User):
        return _user_allowed(actor, action, resource, school_class)
    raise TypeError(f"No authorization rules for {type(resource).__name__}")


def authorize(
    actor: CurrentUser,
    action: Action,
    resource: Resource,
    *,
    school_class: Optional[SchoolClass] = None,
    message: str = "You do not have permission to perform this action",
) -> None:
    if not is_allowed(actor, action, resource, school_class=school_class):
        raise ServiceError(message, status.HTTP_403_FORBIDDEN)
