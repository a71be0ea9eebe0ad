from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    SCHOOL_ADMIN = "SCHOOL_ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class AttendanceStatus(str, Enum):
    present = "present"
    absent = "absent"
    late = "late"
    excused = "excused"


class AssessmentType(str, Enum):
    quiz = "quiz"
    test = "test"
    midterm = "midterm"
    final = "final"
    project = "project"
    assignment = "assignment"
    practical = "practical"
    oral = "oral"


class Term(str, Enum):
    first = "first"
    second = "second"
    third = "third"
    annual = "annual"


class TermSystem(str, Enum):
    semester = "semester"
    trimester = "trimester"
    quarterly = "quarterly"


class GradeSystem(str, Enum):
    percentage = "percentage"
    gpa = "gpa"
    letter = "letter"


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"
