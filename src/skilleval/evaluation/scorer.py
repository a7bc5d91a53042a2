"""Pass/fail scoring for activation and quality cases.

Both scorers are pure functions of the interpreted output and the
case's expectations.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class QualityScore:
    """Outcome of scoring one quality response.

    missing_facts and forbidden_content preserve the order of the
    case's expected_facts and must_not_contain lists.
    """

    missing_facts: list[str] = field(default_factory=list)
    forbidden_content: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.missing_facts and not self.forbidden_content


def score_activation(
    activated_skill: str | None,
    expected_skill: str,
    should_activate: bool,
) -> bool:
    """Decide whether an activation case passed.

    A case passes only when the detected skill equals the expected one
    and the case expects an activation at all. No activation never
    passes, including for should_activate=False cases.

    Args:
        activated_skill: Skill the agent loaded, or None.
        expected_skill: Skill the case expects.
        should_activate: Whether the case expects an activation.

    Returns:
        True if the case passed.
    """
    if activated_skill is None:
        return False
    return activated_skill == expected_skill and should_activate


def score_quality(
    response_text: str,
    expected_facts: list[str],
    must_not_contain: list[str],
) -> QualityScore:
    """Check a response for required facts and forbidden content.

    Matching is case-insensitive substring containment.

    Args:
        response_text: Full assistant text.
        expected_facts: Phrases that must appear.
        must_not_contain: Phrases that must not appear.

    Returns:
        QualityScore listing what was missing and what was forbidden.
    """
    haystack = (response_text or "").lower()
    return QualityScore(
        missing_facts=[fact for fact in expected_facts if fact.lower() not in haystack],
        forbidden_content=[item for item in must_not_contain if item.lower() in haystack],
    )
