"""
Admission policy: maps a recognition verdict to admit / deny.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..vision.pipeline import Verdict


logger = logging.getLogger(__name__)


class Admission(Enum):
    """Decision result for a verdict."""
    ADMIT = "ADMIT"
    DENY = "DENY"
    NO_FACE = "NO_FACE"  # nothing to decide, nothing to log


@dataclass
class ConfidencePolicy:
    """
    Threshold comparison for recognizer scores.

    lower_is_better=True suits distance scores (LBPH): admit when
    confidence < threshold. Otherwise admit when confidence > threshold.
    """
    threshold: float = 35.0
    lower_is_better: bool = True

    def passes(self, confidence: float) -> bool:
        if self.lower_is_better:
            return confidence < self.threshold
        return confidence > self.threshold

    def decide(self, verdict: Verdict, known: bool = True) -> Admission:
        """
        Args:
            verdict: Pipeline output for a sampled frame
            known: Whether verdict.label is an enrolled user
        """
        if not verdict.has_face:
            return Admission.NO_FACE

        if verdict.label is None:
            logger.info(f"ACCESS DENIED: No match (conf: {verdict.confidence:.2f})")
            return Admission.DENY

        if not known:
            logger.info(f"ACCESS DENIED: label {verdict.label} is not enrolled")
            return Admission.DENY

        if self.passes(verdict.confidence):
            logger.info(f"ACCESS GRANTED: label {verdict.label} (conf: {verdict.confidence:.2f})")
            return Admission.ADMIT

        logger.info(f"Low confidence match: label {verdict.label} ({verdict.confidence:.2f})")
        return Admission.DENY


def create_policy_from_config(config) -> ConfidencePolicy:
    return ConfidencePolicy(
        threshold=config.CONFIDENCE_THRESHOLD,
        lower_is_better=config.CONFIDENCE_LOWER_IS_BETTER,
    )


def describe(policy: ConfidencePolicy, confidence: Optional[float] = None) -> str:
    op = "<" if policy.lower_is_better else ">"
    if confidence is None:
        return f"confidence {op} {policy.threshold}"
    return f"{confidence:.2f} {op} {policy.threshold}"
