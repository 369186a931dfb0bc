"""Risk scoring on a single likelihood x impact scale."""

from dataclasses import dataclass
from typing import Optional, Union

from .exceptions import ScoringError
from .schemas import Criticality, ImpactCIA, ImpactLevel, Likelihood, RiskLevel, normalize_label


@dataclass(frozen=True)
class RiskAssessment:
    """Risk at the three report stages."""
    pre_control_score: float
    pre_control: RiskLevel
    after_existing_score: float
    after_existing: RiskLevel
    final_score: float
    final: RiskLevel


class RiskScorer:
    """
    Maps likelihood and impact onto a numeric score and a risk level.

    The same thresholds are used for inline threat scores and for the staged
    scores of the tabular report, so a score always means the same level.
    """

    LIKELIHOOD_SCORES = {
        Likelihood.VERY_LOW: 1,
        Likelihood.LOW: 2,
        Likelihood.MEDIUM: 3,
        Likelihood.HIGH: 4,
        Likelihood.VERY_HIGH: 5,
    }

    IMPACT_SCORES = {
        ImpactLevel.LOW: 1,
        ImpactLevel.MEDIUM: 2,
        ImpactLevel.HIGH: 3,
        ImpactLevel.CRITICAL: 4,
    }

    # Checked top-down; anything below the last entry is low
    THRESHOLDS = [
        (16, RiskLevel.CRITICAL),
        (9, RiskLevel.HIGH),
        (4, RiskLevel.MEDIUM),
    ]

    CRITICAL_MULTIPLIER = 1.5

    LIKELIHOOD_ORDER = list(LIKELIHOOD_SCORES)

    def likelihood(self, value: Union[str, Likelihood]) -> Likelihood:
        try:
            return Likelihood(normalize_label(value))
        except ValueError:
            raise ScoringError(f"Unknown likelihood: {value!r}", details={'value': value})

    def impact(self, value: Union[str, ImpactLevel]) -> ImpactLevel:
        try:
            return ImpactLevel(normalize_label(value))
        except ValueError:
            raise ScoringError(f"Unknown impact: {value!r}", details={'value': value})

    def score(
        self,
        likelihood: Union[str, Likelihood],
        impact: Union[str, ImpactLevel],
        criticality: Optional[Criticality] = None,
    ) -> float:
        """Return likelihood x impact, times 1.5 for critical components, to one decimal."""
        raw = self.LIKELIHOOD_SCORES[self.likelihood(likelihood)] * self.IMPACT_SCORES[self.impact(impact)]
        if criticality == Criticality.CRITICAL:
            raw *= self.CRITICAL_MULTIPLIER
        return round(raw, 1)

    def level(self, score: float) -> RiskLevel:
        for threshold, level in self.THRESHOLDS:
            if score >= threshold:
                return level
        return RiskLevel.LOW

    def level_for(self, likelihood: Union[str, Likelihood], impact: Union[str, ImpactLevel]) -> RiskLevel:
        return self.level(self.score(likelihood, impact))

    def escalate(self, likelihood: Likelihood, criticality: Criticality) -> Likelihood:
        """Raise likelihood to at least medium for critical components."""
        likelihood = self.likelihood(likelihood)
        if criticality == Criticality.CRITICAL and self._rank(likelihood) < self._rank(Likelihood.MEDIUM):
            return Likelihood.MEDIUM
        return likelihood

    def lower(self, likelihood: Likelihood, steps: int = 1) -> Likelihood:
        index = max(self._rank(self.likelihood(likelihood)) - steps, 0)
        return self.LIKELIHOOD_ORDER[index]

    def parse_cia(self, text: str) -> ImpactCIA:
        try:
            return ImpactCIA.parse(text)
        except ValueError as e:
            raise ScoringError(f"Invalid CIA impact {text!r}: {e}", details={'value': text})

    def max_impact(self, text: str) -> ImpactLevel:
        return self.parse_cia(text).highest()

    def assess(
        self,
        score: float,
        likelihood: Union[str, Likelihood],
        existing_controls: Optional[str] = None,
        recommendation: Optional[str] = None,
    ) -> RiskAssessment:
        """
        Score a threat before controls, after existing controls and after recommendations.

        Each control stage lowers likelihood one step and scales the score by the
        likelihood ratio, so stages never exceed the pre-control score.
        """
        likelihood = self.likelihood(likelihood)
        after = self.lower(likelihood) if existing_controls else likelihood
        final = self.lower(after) if recommendation else after

        after_score = self._scale(score, likelihood, after)
        final_score = self._scale(score, likelihood, final)
        return RiskAssessment(
            pre_control_score=score,
            pre_control=self.level(score),
            after_existing_score=after_score,
            after_existing=self.level(after_score),
            final_score=final_score,
            final=self.level(final_score),
        )

    def _scale(self, score: float, original: Likelihood, reduced: Likelihood) -> float:
        ratio = self.LIKELIHOOD_SCORES[reduced] / self.LIKELIHOOD_SCORES[original]
        return round(score * ratio, 1)

    def _rank(self, likelihood: Likelihood) -> int:
        return self.LIKELIHOOD_ORDER.index(likelihood)
