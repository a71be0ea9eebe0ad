"""Grade banding and the small arithmetic folds shared by attendance and results."""

from typing import Dict, Iterable, List, Tuple

# (minimum percentage, grade, gpa); evaluated top-down, first match wins.
GRADE_BANDS: List[Tuple[float, str, float]] = [
    (90, "A+", 4.0),
    (80, "A", 3.5),
    (70, "B+", 3.0),
    (60, "B", 2.5),
    (50, "C+", 2.0),
    (40, "C", 1.5),
    (35, "D", 1.0),
]
FAILING_GRADE: Tuple[str, float] = ("F", 0.0)

GRADE_LETTERS = [band[1] for band in GRADE_BANDS] + [FAILING_GRADE[0]]

# Statuses folded into the "attended" side of the rate.
ATTENDED_STATUSES = ("present", "late", "excused")


def grade_for(percentage: float) -> Tuple[str, float]:
    """Return (letter grade, gpa) for a percentage."""
    for minimum, grade, gpa in GRADE_BANDS:
        if percentage >= minimum:
            return grade, gpa
    return FAILING_GRADE


def calculate_percentage(marks_obtained: float, total_marks: float) -> float:
    # Not rounded: the grade lookup sees the exact value.
    return marks_obtained / total_marks * 100


def default_grade_scale() -> List[Dict]:
    """Subject grade-scale table matching GRADE_BANDS (upper bounds are exclusive except for A+)."""
    scale = []
    upper = 100.0
    for minimum, grade, gpa in GRADE_BANDS:
        scale.append(
            {"grade": grade, "min_percentage": float(minimum), "max_percentage": upper, "gpa_value": gpa}
        )
        upper = float(minimum)
    scale.append(
        {"grade": FAILING_GRADE[0], "min_percentage": 0.0, "max_percentage": upper, "gpa_value": FAILING_GRADE[1]}
    )
    return scale


def empty_status_counts() -> Dict[str, int]:
    return {"present": 0, "absent": 0, "late": 0, "excused": 0}


def count_statuses(statuses: Iterable[str]) -> Dict[str, int]:
    counts = empty_status_counts()
    for s in statuses:
        counts[s] = counts.get(s, 0) + 1
    return counts


def attendance_rate(counts: Dict[str, int]) -> float:
    """(present + late + excused) / total * 100 rounded to 2 places; 0 for no records."""
    total = sum(counts.values())
    if total == 0:
        return 0.0
    attended = sum(counts.get(s, 0) for s in ATTENDED_STATUSES)
    return round(attended / total * 100, 2)


def mean(values: List[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)
