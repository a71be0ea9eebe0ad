from school_api.core.models.school import School
from school_api.core.models.class_model import ClassSubject, ClassSubjectTeacher, SchoolClass
from school_api.core.models.teacher_class_assignment import TeacherClassAssignment
from school_api.core.models.attendance import Attendance
from school_api.core.models.result import Result, ResultRevision
from school_api.core.models.subject import Subject

__all__ = [
    "Attendance",
    "ClassSubject",
    "ClassSubjectTeacher",
    "Result",
    "ResultRevision",
    "School",
    "SchoolClass",
    "Subject",
    "TeacherClassAssignment",
]
