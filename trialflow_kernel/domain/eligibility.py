"""
Eligibility port.

The lifecycle engine consults an EligibilityChecker exactly once, when a
tester applies.  Criteria themselves (age, country, past ratings, ...) are
owned by the surrounding system.
"""

from typing import Protocol, runtime_checkable
from uuid import UUID

from trialflow_kernel.domain.dtos import EligibilityResult


@runtime_checkable
class EligibilityChecker(Protocol):
    def check(self, campaign_id: UUID, tester_id: str) -> EligibilityResult:
        ...


class OpenEligibility:
    """Admits every tester."""

    def check(self, campaign_id: UUID, tester_id: str) -> EligibilityResult:
        return EligibilityResult(eligible=True)
