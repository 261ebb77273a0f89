"""
Markbook Common Core Package.
"""

from .config_enums import AverageWeightingPolicy, Environment
from .error_enums import ErrorCode, GradingErrorCode
from .grade_scales import (
    GRADE_SCALE_TEMPLATES,
    GradeBandTemplate,
    GradeScaleTemplate,
    get_grade_scale_template,
    list_grade_scale_templates,
)
from .models.error_models import ErrorDetail
from .status_enums import CompletenessStatus, ResultStatus

__all__ = [
    "AverageWeightingPolicy",
    "CompletenessStatus",
    "Environment",
    "ErrorCode",
    "ErrorDetail",
    "GRADE_SCALE_TEMPLATES",
    "GradeBandTemplate",
    "GradeScaleTemplate",
    "GradingErrorCode",
    "ResultStatus",
    "get_grade_scale_template",
    "list_grade_scale_templates",
]
