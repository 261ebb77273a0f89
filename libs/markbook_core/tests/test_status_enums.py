"""Unit tests for result status and completeness enums."""

from __future__ import annotations

import pytest
from markbook_core.status_enums import CompletenessStatus, ResultStatus


class TestResultStatus:
    @pytest.mark.parametrize(
        "current, target, allowed",
        [
            (ResultStatus.DRAFT, ResultStatus.PUBLISHED, True),
            (ResultStatus.PUBLISHED, ResultStatus.DRAFT, True),
            (ResultStatus.DRAFT, ResultStatus.DRAFT, False),
            (ResultStatus.PUBLISHED, ResultStatus.PUBLISHED, False),
        ],
    )
    def test_transitions(
        self, current: ResultStatus, target: ResultStatus, allowed: bool
    ) -> None:
        assert current.can_transition_to(target) is allowed

    def test_values_are_lowercase(self) -> None:
        assert [status.value for status in ResultStatus] == ["draft", "published"]
        assert ResultStatus("published") is ResultStatus.PUBLISHED


class TestCompletenessStatus:
    def test_from_flag(self) -> None:
        assert CompletenessStatus.from_flag(True) is CompletenessStatus.COMPLETE
        assert CompletenessStatus.from_flag(False) is CompletenessStatus.INCOMPLETE
