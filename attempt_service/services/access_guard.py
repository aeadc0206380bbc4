"""Access window and eligibility checks.

Pure functions only: no I/O, no clock reads. Callers pass ``now`` in, which
keeps the window boundaries trivially testable.

Both ends of the window are inclusive. A student may start at exactly
``starts_at`` and may still save or submit at exactly ``ends_at``.
"""

from __future__ import annotations

from dataclasses import dataclass

from attempt_service.models.assessment import ASSIGNED, AssessmentDefinition

NOT_PUBLISHED = "not-published"
NOT_PERMITTED = "not-permitted"
BEFORE_WINDOW = "before-window"
AFTER_WINDOW = "after-window"


@dataclass(frozen=True, slots=True)
class AccessDecision:
    allowed: bool
    reason: str | None = None


ALLOWED = AccessDecision(allowed=True)


def can_attempt(
    definition: AssessmentDefinition, student_id: str, now: int
) -> AccessDecision:
    if definition.status != "published":
        return AccessDecision(allowed=False, reason=NOT_PUBLISHED)

    if definition.access_policy == ASSIGNED and student_id not in definition.assigned_to:
        return AccessDecision(allowed=False, reason=NOT_PERMITTED)

    if definition.starts_at is not None and now < definition.starts_at:
        return AccessDecision(allowed=False, reason=BEFORE_WINDOW)

    if definition.ends_at is not None and now > definition.ends_at:
        return AccessDecision(allowed=False, reason=AFTER_WINDOW)

    return ALLOWED
