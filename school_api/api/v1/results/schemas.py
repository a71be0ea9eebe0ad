from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from school_api.core.enums import AssessmentType, GradeSystem, Term


class GradingInfo(BaseModel):
    weightage: Optional[float] = Field(None, ge=0, le=100)
    category: Optional[str] = None


class ResultCreate(BaseModel):
    student_id: UUID
    class_id: UUID
    subject: str = Field(..., min_length=1, max_length=100)
    subject_code: Optional[str] = Field(None, max_length=20)
    assessment_type: AssessmentType
    assessment_name: str = Field(..., min_length=1, max_length=255)
    marks_obtained: float = Field(..., ge=0)
    total_marks: float = Field(..., gt=0)
    term: Term
    academic_year: str = Field(..., min_length=4, max_length=20)
    exam_date: date
    remarks: Optional[str] = None
    grading: Optional[GradingInfo] = None
    is_published: bool = False


class BulkResultEntry(BaseModel):
    student_id: UUID
    marks_obtained: float = Field(..., ge=0)
    remarks: Optional[str] = None


class ResultBulkCreate(BaseModel):
    """One assessment for many students of a class."""

    class_id: UUID
    subject: str = Field(..., min_length=1, max_length=100)
    subject_code: Optional[str] = Field(None, max_length=20)
    assessment_type: AssessmentType
    assessment_name: str = Field(..., min_length=1, max_length=255)
    total_marks: float = Field(..., gt=0)
    term: Term
    academic_year: str = Field(..., min_length=4, max_length=20)
    exam_date: date
    grading: Optional[GradingInfo] = None
    is_published: bool = False
    results: List[BulkResultEntry] = Field(..., min_length=1)


class ResultUpdate(BaseModel):
    marks_obtained: Optional[float] = Field(None, ge=0)
    total_marks: Optional[float] = Field(None, gt=0)
    remarks: Optional[str] = None
    is_published: Optional[bool] = None
    revision_reason: Optional[str] = Field(None, max_length=255)


class RevisionResponse(BaseModel):
    id: UUID
    old_marks: float
    new_marks: float
    reason: str
    updated_by: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ResultResponse(BaseModel):
    id: UUID
    student_id: UUID
    class_id: UUID
    school_id: UUID
    teacher_id: Optional[UUID] = None
    subject: str
    subject_code: Optional[str] = None
    assessment_type: str
    assessment_name: str
    marks_obtained: float
    total_marks: float
    percentage: float
    grade: str
    gpa: float
    term: str
    academic_year: str
    exam_date: date
    remarks: Optional[str] = None
    grading: Optional[GradingInfo] = None
    is_published: bool
    revisions: List[RevisionResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BulkResultResponse(BaseModel):
    created: int
    results: List[ResultResponse]


class ResultListResponse(BaseModel):
    results: List[ResultResponse]
    total: int
    total_pages: int
    current_page: int


class ReportCardAssessment(BaseModel):
    result_id: UUID
    assessment_type: str
    assessment_name: str
    exam_date: date
    marks_obtained: float
    total_marks: float
    percentage: float
    grade: str
    gpa: float


class ReportCardSubject(BaseModel):
    subject: str
    subject_code: Optional[str] = None
    assessments: List[ReportCardAssessment]
    total_marks: float
    total_obtained: float
    percentage: float
    gpa: float
    grade: str


class ReportCardSummary(BaseModel):
    total_subjects: int
    total_assessments: int
    total_marks: float
    total_obtained: float
    overall_percentage: float
    overall_gpa: float
    overall_grade: str


class ReportCardResponse(BaseModel):
    student_id: UUID
    student_name: str
    student_number: Optional[str] = None
    class_id: Optional[UUID] = None
    term: str
    academic_year: str
    subjects: List[ReportCardSubject]
    summary: ReportCardSummary


class ClassResultEntry(BaseModel):
    result_id: UUID
    student_id: UUID
    student_name: str
    roll_number: Optional[str] = None
    assessment_type: str
    assessment_name: str
    marks_obtained: float
    total_marks: float
    percentage: float
    grade: str
    is_published: bool


class ClassResultStatistics(BaseModel):
    total_students: int
    average: float
    highest: float
    lowest: float
    grade_distribution: Dict[str, int]


class ClassResultsResponse(BaseModel):
    class_id: UUID
    subject: str
    term: str
    academic_year: str
    results: List[ClassResultEntry]
    statistics: ClassResultStatistics


# ----- Subject catalog -----
class MarkingScheme(BaseModel):
    theory: float = Field(70, ge=0, le=100)
    practical: float = Field(30, ge=0, le=100)
    internal: float = Field(25, ge=0, le=100)
    external: float = Field(75, ge=0, le=100)


class GradingCriteria(BaseModel):
    pass_percentage: float = Field(35, ge=0, le=100)
    max_marks: float = Field(100, gt=0)
    grade_system: GradeSystem = GradeSystem.percentage


class GradeScaleEntry(BaseModel):
    grade: str
    min_percentage: float
    max_percentage: float
    gpa_value: float


class SubjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    description: Optional[str] = None
    grade: int = Field(..., ge=1, le=12)
    credits: int = Field(1, ge=1)
    is_optional: bool = False
    marking_scheme: MarkingScheme = Field(default_factory=MarkingScheme)
    grading_criteria: GradingCriteria = Field(default_factory=GradingCriteria)
    grade_scale: Optional[List[GradeScaleEntry]] = None
    teachers: List[UUID] = []


class SubjectResponse(BaseModel):
    id: UUID
    school_id: UUID
    name: str
    code: str
    description: Optional[str] = None
    grade: int
    credits: int
    is_active: bool
    is_optional: bool
    marking_scheme: MarkingScheme
    grading_criteria: GradingCriteria
    grade_scale: List[GradeScaleEntry]
    teachers: List[UUID]
    created_at: datetime

    class Config:
        from_attributes = True
