"""
Exam availability rules

Pure decision logic: the caller fetches the exam, the enrollment and the
attempt count, this module only decides.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from examdesk.exams.models import AttemptPolicy, DenialReason, Exam, Visibility

DENIAL_MESSAGES = {
    DenialReason.NOT_ACTIVE: "This exam is not active at the moment",
    DenialReason.NOT_STARTED: "This exam has not started yet",
    DenialReason.ENDED: "The period for taking this exam has ended",
    DenialReason.NOT_ENROLLED: "You must be enrolled in the course to take this exam",
}


@dataclass(frozen=True)
class AvailabilityDecision:
    allowed: bool
    attempts_used: int
    policy: AttemptPolicy
    reason: Optional[DenialReason] = None

    @property
    def message(self) -> str:
        if self.allowed:
            return "The exam is available"
        if self.reason == DenialReason.ATTEMPTS_EXHAUSTED:
            return f"You have used all allowed attempts ({self.policy.cap})"
        return DENIAL_MESSAGES[self.reason]

    @property
    def attempts_remaining(self):
        return self.policy.remaining(self.attempts_used)


def requires_enrollment_lookup(exam: Exam) -> bool:
    """Course-bound exams look up the student's paid enrollment."""
    return exam.visibility == Visibility.COURSE_ONLY or (
        exam.visibility == Visibility.BOTH and bool(exam.course_id)
    )


def evaluate_availability(
    exam: Exam,
    now: datetime,
    has_paid_enrollment: Optional[bool],
    prior_attempt_count: int,
    both_requires_enrollment: bool = False,
) -> AvailabilityDecision:
    """
    Decide whether a student may take ``exam`` right now.

    Checks run in a fixed order and the first failure wins:
    active flag, start date, end date, enrollment, attempt cap.

    ``has_paid_enrollment`` is None when no lookup was made
    (see ``requires_enrollment_lookup``).
    """
    policy = exam.attempt_policy

    def deny(reason: DenialReason) -> AvailabilityDecision:
        return AvailabilityDecision(
            allowed=False, attempts_used=prior_attempt_count, policy=policy, reason=reason
        )

    if not exam.is_active:
        return deny(DenialReason.NOT_ACTIVE)

    if exam.start_date and now < exam.start_date:
        return deny(DenialReason.NOT_STARTED)

    if exam.end_date and now > exam.end_date:
        return deny(DenialReason.ENDED)

    if requires_enrollment_lookup(exam) and not has_paid_enrollment:
        if exam.visibility == Visibility.COURSE_ONLY or both_requires_enrollment:
            return deny(DenialReason.NOT_ENROLLED)

    if policy.is_exhausted(prior_attempt_count):
        return deny(DenialReason.ATTEMPTS_EXHAUSTED)

    return AvailabilityDecision(allowed=True, attempts_used=prior_attempt_count, policy=policy)
