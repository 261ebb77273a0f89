"""
Grade scale template registry.

Provides the default grading tables an institution can start from when it
creates its first grade scale (primary school, WAEC/NECO, Cambridge, 4.0 GPA).
Bands are expressed on the 0-100 percentage axis with hundredth-precision
upper bounds so that every two-decimal percentage falls in exactly one band.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

PERCENTAGE_FLOOR = Decimal("0")
PERCENTAGE_CEILING = Decimal("100")
PERCENTAGE_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class GradeBandTemplate:
    """
    One band of a grade scale template.

    Attributes:
        grade: Grade label (e.g., "A1", "B+")
        min_score: Inclusive lower percentage bound
        max_score: Inclusive upper percentage bound
        points: Grade points awarded for the band
        remark: Short descriptive remark printed on report cards
    """

    grade: str
    min_score: Decimal
    max_score: Decimal
    points: Decimal
    remark: str

    def __post_init__(self) -> None:
        """Validate band bounds."""
        if not self.grade:
            msg = "grade cannot be empty"
            raise ValueError(msg)
        if not (PERCENTAGE_FLOOR <= self.min_score <= self.max_score <= PERCENTAGE_CEILING):
            msg = (
                f"band '{self.grade}' must satisfy 0 <= min_score <= max_score <= 100, "
                f"got [{self.min_score}, {self.max_score}]"
            )
            raise ValueError(msg)


@dataclass(frozen=True)
class GradeScaleTemplate:
    """
    Metadata and bands for a default grade scale.

    Attributes:
        template_id: Unique identifier for the template (e.g., "waec_neco")
        display_name: Human-readable name used as the default scale name
        bands: Bands ordered from lowest to highest percentage
        description: Purpose and context of this scale
    """

    template_id: str
    display_name: str
    bands: tuple[GradeBandTemplate, ...]
    description: str

    def __post_init__(self) -> None:
        """Validate template metadata."""
        if not self.template_id:
            msg = "template_id cannot be empty"
            raise ValueError(msg)
        if not self.bands:
            msg = "bands cannot be empty"
            raise ValueError(msg)
        grades = [band.grade for band in self.bands]
        if len(grades) != len(set(grades)):
            msg = f"grades must be unique: {grades}"
            raise ValueError(msg)
        ordered = sorted(self.bands, key=lambda band: band.min_score)
        if list(self.bands) != ordered:
            msg = f"bands of '{self.template_id}' must be ordered by min_score ascending"
            raise ValueError(msg)


def _band(grade: str, low: str, high: str, points: str, remark: str) -> GradeBandTemplate:
    return GradeBandTemplate(
        grade=grade,
        min_score=Decimal(low),
        max_score=Decimal(high),
        points=Decimal(points),
        remark=remark,
    )


_PRIMARY_100 = GradeScaleTemplate(
    template_id="primary_100",
    display_name="Primary School Grading (100%)",
    bands=(
        _band("F", "0", "59.99", "0.0", "Poor"),
        _band("D", "60", "69.99", "2.0", "Fair"),
        _band("C", "70", "79.99", "2.5", "Good"),
        _band("B", "80", "89.99", "3.0", "Very Good"),
        _band("A", "90", "100", "4.0", "Excellent"),
    ),
    description="Five-band primary school scale on a 100% axis.",
)

_WAEC_NECO = GradeScaleTemplate(
    template_id="waec_neco",
    display_name="Secondary School Grading (WAEC/NECO)",
    bands=(
        _band("F", "0", "49.99", "0.0", "Fail"),
        _band("D", "50", "59.99", "2.0", "Pass"),
        _band("C3", "60", "64.99", "2.2", "Credit"),
        _band("C2", "65", "69.99", "2.5", "Credit"),
        _band("C1", "70", "74.99", "3.0", "Credit"),
        _band("B2", "75", "79.99", "3.2", "Good"),
        _band("B1", "80", "84.99", "3.5", "Good"),
        _band("A2", "85", "89.99", "3.8", "Very Good"),
        _band("A1", "90", "100", "4.0", "Excellent"),
    ),
    description=(
        "Nine-band West African senior secondary scale. Credit passes start at C3 (60%)."
    ),
)

_CAMBRIDGE = GradeScaleTemplate(
    template_id="cambridge",
    display_name="Cambridge Assessment Scale",
    bands=(
        _band("F", "0", "39.99", "0.0", "Fail"),
        _band("E", "40", "49.99", "2.0", "Borderline"),
        _band("D", "50", "59.99", "2.5", "Pass"),
        _band("C", "60", "69.99", "3.0", "Satisfactory"),
        _band("B", "70", "79.99", "3.3", "Good"),
        _band("A", "80", "89.99", "3.7", "Excellent"),
        _band("A*", "90", "100", "4.0", "Exceptional"),
    ),
    description="Cambridge-style A* to F scale.",
)

_AMERICAN_GPA_4 = GradeScaleTemplate(
    template_id="american_gpa_4",
    display_name="American GPA Scale (4.0)",
    bands=(
        _band("F", "0", "59.99", "0.0", "Fail"),
        _band("D", "60", "69.99", "1.0", "Poor"),
        _band("C-", "70", "72.99", "1.7", "Below Average"),
        _band("C", "73", "76.99", "2.0", "Satisfactory"),
        _band("C+", "77", "79.99", "2.3", "Satisfactory"),
        _band("B-", "80", "82.99", "2.7", "Fair"),
        _band("B", "83", "86.99", "3.0", "Good"),
        _band("B+", "87", "89.99", "3.3", "Good"),
        _band("A-", "90", "92.99", "3.7", "Very Good"),
        _band("A", "93", "96.99", "4.0", "Excellent"),
        _band("A+", "97", "100", "4.0", "Outstanding"),
    ),
    description="Letter grades with plus/minus modifiers on a 4.0 grade point scale.",
)

# Registry mapping template_id to template
GRADE_SCALE_TEMPLATES: dict[str, GradeScaleTemplate] = {
    _PRIMARY_100.template_id: _PRIMARY_100,
    _WAEC_NECO.template_id: _WAEC_NECO,
    _CAMBRIDGE.template_id: _CAMBRIDGE,
    _AMERICAN_GPA_4.template_id: _AMERICAN_GPA_4,
}


def get_grade_scale_template(template_id: str) -> GradeScaleTemplate:
    """
    Retrieve a grade scale template by ID.

    Args:
        template_id: Unique template identifier

    Returns:
        GradeScaleTemplate for the requested template

    Raises:
        ValueError: If template_id is not registered
    """
    if template_id not in GRADE_SCALE_TEMPLATES:
        available = ", ".join(sorted(GRADE_SCALE_TEMPLATES.keys()))
        msg = f"Unknown grade scale template '{template_id}'. Available templates: {available}"
        raise ValueError(msg)
    return GRADE_SCALE_TEMPLATES[template_id]


def list_grade_scale_templates() -> list[str]:
    """
    Get list of all registered grade scale template IDs.

    Returns:
        Sorted list of template identifiers
    """
    return sorted(GRADE_SCALE_TEMPLATES.keys())
