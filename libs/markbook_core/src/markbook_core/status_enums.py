"""Status enums for result lifecycle and completeness tracking.

ResultStatus: Publication state machine for term results (DRAFT <-> PUBLISHED).
CompletenessStatus: Whether a subject or term result has every required input.

Both enums carry one canonical lowercase casing; persistence layers store the
enum value verbatim.
"""

from __future__ import annotations

from enum import Enum


class ResultStatus(str, Enum):
    """Publication lifecycle of a term result.

    DRAFT results are recomputed freely and resolve grades through the
    institution's active scale. PUBLISHED results resolve grades through the
    scale pinned at publish time. Unpublishing returns to DRAFT.
    """

    DRAFT = "draft"
    PUBLISHED = "published"

    @classmethod
    def allowed_transitions(cls) -> dict[ResultStatus, frozenset[ResultStatus]]:
        """Return the permitted target states for each state."""
        return {
            cls.DRAFT: frozenset({cls.PUBLISHED}),
            cls.PUBLISHED: frozenset({cls.DRAFT}),
        }

    def can_transition_to(self, target: ResultStatus) -> bool:
        return target in self.allowed_transitions()[self]


class CompletenessStatus(str, Enum):
    """Completeness marker for subject and term results.

    INCOMPLETE aggregates still carry a best-effort percentage but are excluded
    from cohort ranking.
    """

    COMPLETE = "complete"
    INCOMPLETE = "incomplete"

    @classmethod
    def from_flag(cls, is_complete: bool) -> CompletenessStatus:
        return cls.COMPLETE if is_complete else cls.INCOMPLETE
