import pytest

from school_api.core.grading import (
    GRADE_LETTERS,
    attendance_rate,
    calculate_percentage,
    count_statuses,
    default_grade_scale,
    grade_for,
    mean,
)


@pytest.mark.parametrize(
    "percentage, expected",
    [
        (100, ("A+", 4.0)),
        (90, ("A+", 4.0)),
        (89.999, ("A", 3.5)),
        (80, ("A", 3.5)),
        (70, ("B+", 3.0)),
        (69.99, ("B", 2.5)),
        (50, ("C+", 2.0)),
        (40, ("C", 1.5)),
        (35, ("D", 1.0)),
        (34.999, ("F", 0.0)),
        (0, ("F", 0.0)),
    ],
)
def test_grade_band_boundaries(percentage, expected):
    assert grade_for(percentage) == expected


def test_percentage_is_not_rounded_before_grading():
    pct = calculate_percentage(42, 60)
    assert pct == pytest.approx(70.0)
    assert grade_for(pct) == ("B+", 3.0)

    # 89.995 would round to 90.0 and wrongly earn an A+
    pct = calculate_percentage(89.995, 100)
    assert grade_for(pct) == ("A", 3.5)


def test_attendance_rate_counts_late_and_excused_as_attended():
    counts = count_statuses(["present", "present", "present", "present", "late", "excused", "absent"])
    assert counts == {"present": 4, "absent": 1, "late": 1, "excused": 1}
    assert attendance_rate(counts) == 85.71


def test_attendance_rate_with_no_records_is_zero():
    assert attendance_rate(count_statuses([])) == 0


def test_default_grade_scale_covers_every_letter():
    scale = default_grade_scale()
    assert [row["grade"] for row in scale] == GRADE_LETTERS
    assert scale[0]["max_percentage"] == 100.0
    assert scale[-1]["min_percentage"] == 0.0
    for upper, lower in zip(scale, scale[1:]):
        assert lower["max_percentage"] == upper["min_percentage"]


def test_mean_of_empty_sequence_is_zero():
    assert mean([]) == 0
    assert mean([4.0, 0.0]) == 2.0
