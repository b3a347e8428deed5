"""Assertion evaluator - pure pass/fail decision for one probe outcome."""
from dataclasses import dataclass
from typing import Optional

from ..errors import AssertionFailure
from ..schemas import AssertionConfig
from .probe import Failed, ProbeOutcome


@dataclass(frozen=True)
class Verdict:
    passed: bool
    reason: Optional[str] = None

    @property
    def failure(self) -> Optional[AssertionFailure]:
        return None if self.passed else AssertionFailure(self.reason or "assertion failed")


PASS = Verdict(True)


def media_type(content_type: Optional[str]) -> Optional[str]:
    """``"Application/JSON; charset=utf-8"`` -> ``"application/json"``."""
    if not content_type:
        return None
    return content_type.split(";")[0].strip().lower() or None


def evaluate(outcome: ProbeOutcome, assertions: AssertionConfig) -> Verdict:
    """Apply status code, response time and content type rules.

    A ``Failed`` outcome never passes.
    """
    if isinstance(outcome, Failed):
        return Verdict(False, f"{outcome.kind.value}: {outcome.reason}")

    if outcome.code is not None and outcome.code not in assertions.allowed_codes:
        allowed = ", ".join(str(c) for c in sorted(assertions.allowed_codes))
        return Verdict(False, f"Status {outcome.code} not in [{allowed}]")

    if outcome.elapsed_ms > assertions.max_response_ms:
        return Verdict(
            False,
            f"Response time {outcome.elapsed_ms}ms exceeds {assertions.max_response_ms}ms",
        )

    if assertions.allowed_content_types:
        actual = media_type(outcome.content_type)
        if actual not in assertions.allowed_content_types:
            return Verdict(False, f"Content type {actual or 'missing'} not allowed")

    return PASS
