"""DREAD scoring for analyzed threats."""

import re
from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from .exceptions import ScoringError
from .graph import ComponentGraph
from .logging_config import get_logger
from .schemas import (
    AnalyzedThreat, DreadAssessment, DreadFactors, DreadLevel, ImpactLevel, Likelihood, StrideCategory, TargetKind,
)

logger = get_logger(__name__)


@dataclass
class DreadSummary:
    """Aggregate view over a batch of DREAD assessments."""
    average: float = 0.0
    highest: float = 0.0
    lowest: float = 0.0
    distribution: dict[str, int] = field(default_factory=dict)
    top: list[AnalyzedThreat] = field(default_factory=list)


class DreadCalculator:
    """
    Rates threats on Damage, Reproducibility, Exploitability, Affected users
    and Discoverability.

    Factors are inferred from what the STRIDE analysis already knows about a
    threat: its impact, likelihood, category, title keywords, CWE ids and the
    kind of component it targets. The score is the mean of the five factors.
    """

    FACTORS = ('damage', 'reproducibility', 'exploitability', 'affectedUsers', 'discoverability')

    GUIDELINES = {
        'damage': {
            10: 'Complete system compromise, full data breach, regulatory fines',
            8: 'Significant data breach, major financial loss, reputation damage',
            6: 'Moderate data exposure, business disruption',
            4: 'Limited data exposure, minor disruption',
            2: 'Minimal impact, no sensitive data exposed',
            0: 'No significant damage',
        },
        'reproducibility': {
            10: 'Reproducible every time, automated',
            8: 'Reproducible most of the time',
            6: 'Needs specific conditions but is reliable',
            4: 'Hard to reproduce, depends on timing',
            2: 'Very hard to reproduce',
            0: 'Cannot be reproduced reliably',
        },
        'exploitability': {
            10: 'No skill needed, automated tools available',
            8: 'Novice attacker with basic tools',
            6: 'Intermediate attacker with custom tools',
            4: 'Skilled attacker with specialized knowledge',
            2: 'Expert attacker with advanced resources',
            0: 'Theoretically possible, practically impossible',
        },
        'affectedUsers': {
            10: 'All users',
            8: 'Most users (over 75%)',
            6: 'Many users (50-75%)',
            4: 'Some users (25-50%)',
            2: 'Few users (under 25%)',
            0: 'Administrative users only',
        },
        'discoverability': {
            10: 'Public knowledge, documented vulnerability',
            8: 'Found by routine scanning',
            6: 'Found by manual testing',
            4: 'Needs detailed analysis to find',
            2: 'Very hard to find',
            0: 'Needs insider knowledge or source access',
        },
    }

    # Checked top-down; anything below the last entry is informational
    THRESHOLDS = [
        (9, DreadLevel.CRITICAL),
        (7, DreadLevel.HIGH),
        (5, DreadLevel.MEDIUM),
        (3, DreadLevel.LOW),
    ]

    DAMAGE_BY_IMPACT = {
        ImpactLevel.CRITICAL: 8,
        ImpactLevel.HIGH: 8,
        ImpactLevel.MEDIUM: 6,
        ImpactLevel.LOW: 3,
    }

    EXPLOITABILITY_BY_LIKELIHOOD = {
        Likelihood.VERY_HIGH: 8,
        Likelihood.HIGH: 8,
        Likelihood.MEDIUM: 6,
        Likelihood.LOW: 4,
        Likelihood.VERY_LOW: 4,
    }

    EXPOSED_TARGETS = ('api', 'external', 'public', 'gateway')
    INTERNAL_TARGETS = ('internal', 'database')

    INJECTION_CWES = {'CWE-89', 'CWE-79', 'CWE-78'}
    MISSING_AUTH_CWES = {'CWE-287', 'CWE-306', 'CWE-862'}

    def factors(self, **values) -> DreadFactors:
        """Build factors from manual ratings, rejecting values outside 0-10."""
        try:
            return DreadFactors(**values)
        except PydanticValidationError as e:
            raise ScoringError(f'DREAD factors must be between 0 and 10: {e}', details={'factors': values})

    def score(self, factors: DreadFactors) -> float:
        total = sum(getattr(factors, name) for name in self.FACTORS)
        return round(total / len(self.FACTORS), 1)

    def level(self, score: float) -> DreadLevel:
        for threshold, level in self.THRESHOLDS:
            if score >= threshold:
                return level
        return DreadLevel.INFORMATIONAL

    def infer_factors(self, threat: AnalyzedThreat, target_type: str = '') -> DreadFactors:
        damage = self.DAMAGE_BY_IMPACT.get(threat.impact, 5)
        reproducibility = 5
        exploitability = 5
        affected_users = 5
        discoverability = 5

        title = threat.title.lower()
        category = threat.strideCategory

        if 'injection' in title or 'code execution' in title:
            damage = max(damage, 9)
            exploitability = 7
        if 'data breach' in title or 'data exposure' in title:
            damage = max(damage, 8)
            affected_users = 8
        if category == StrideCategory.DENIAL_OF_SERVICE or 'denial of service' in title or re.search(r'\bdos\b', title):
            affected_users = 9
            damage = 6
        if 'privilege' in title or 'escalation' in title:
            damage = max(damage, 8)
            exploitability = 6

        if category in (StrideCategory.SPOOFING, StrideCategory.TAMPERING):
            reproducibility = 7
        if category == StrideCategory.INFORMATION_DISCLOSURE:
            reproducibility = 6
            discoverability = 6

        # Likelihood decides exploitability over any title hint
        exploitability = self.EXPLOITABILITY_BY_LIKELIHOOD.get(threat.likelihood, exploitability)
        if threat.likelihood in (Likelihood.HIGH, Likelihood.VERY_HIGH):
            reproducibility = max(reproducibility, 7)

        target = f'{threat.targetName} {target_type}'.lower()
        if any(word in target for word in self.EXPOSED_TARGETS):
            discoverability = 8
        if any(word in target for word in self.INTERNAL_TARGETS):
            discoverability = 4

        cwes = {cwe.upper() for cwe in threat.cweIds}
        if cwes & self.INJECTION_CWES:
            exploitability = max(exploitability, 8)
            discoverability = max(discoverability, 7)
        if cwes & self.MISSING_AUTH_CWES:
            damage = max(damage, 7)
            reproducibility = max(reproducibility, 8)

        return DreadFactors(
            damage=self._clamp(damage),
            reproducibility=self._clamp(reproducibility),
            exploitability=self._clamp(exploitability),
            affectedUsers=self._clamp(affected_users),
            discoverability=self._clamp(discoverability),
        )

    def assess(
        self,
        threat: AnalyzedThreat,
        target_type: str = '',
        factors: Optional[DreadFactors] = None,
    ) -> DreadAssessment:
        """Rate one threat; inferred factors are used unless explicit ones are given."""
        factors = factors or self.infer_factors(threat, target_type)
        score = self.score(factors)
        level = self.level(score)
        return DreadAssessment(
            factors=factors,
            score=score,
            level=level,
            justification={name: self.justify(name, getattr(factors, name)) for name in self.FACTORS},
            recommendation=self.recommend(factors, level),
        )

    def annotate(self, threats: list[AnalyzedThreat], graph: ComponentGraph) -> list[AnalyzedThreat]:
        """Copies of the threats carrying a DREAD assessment each."""
        annotated = [
            threat.model_copy(update={'dread': self.assess(threat, self._target_type(threat, graph))})
            for threat in threats
        ]
        logger.debug(f"DREAD scored {len(annotated)} threats")
        return annotated

    def summarize(self, threats: list[AnalyzedThreat], top: int = 5) -> DreadSummary:
        rated = [t for t in threats if t.dread is not None]
        distribution = {level.value: 0 for level in DreadLevel}
        if not rated:
            return DreadSummary(distribution=distribution)

        scores = [t.dread.score for t in rated]
        for threat in rated:
            distribution[threat.dread.level.value] += 1
        return DreadSummary(
            average=round(sum(scores) / len(scores), 1),
            highest=max(scores),
            lowest=min(scores),
            distribution=distribution,
            top=sorted(rated, key=lambda t: t.dread.score, reverse=True)[:top],
        )

    def justify(self, factor: str, value: int) -> str:
        guidelines = self.GUIDELINES[factor]
        for threshold in sorted(guidelines, reverse=True):
            if value >= threshold:
                return guidelines[threshold]
        return guidelines[0]

    def recommend(self, factors: DreadFactors, level: DreadLevel) -> str:
        if level in (DreadLevel.CRITICAL, DreadLevel.HIGH):
            advice = ['Immediate remediation required.']
        elif level == DreadLevel.MEDIUM:
            advice = ['Schedule remediation in the next sprint.']
        else:
            advice = ['Monitor and address in regular maintenance.']

        if factors.damage >= 8:
            advice.append('Add defense in depth to contain the damage.')
        if factors.exploitability >= 8:
            advice.append('Patch and validate input to make exploitation harder.')
        if factors.reproducibility >= 8:
            advice.append('Add rate limiting and anomaly detection.')
        if factors.affectedUsers >= 8:
            advice.append('Segment the system to limit the blast radius.')
        if factors.discoverability >= 8:
            advice.append('Reduce the exposed attack surface.')
        return ' '.join(advice)

    @staticmethod
    def _target_type(threat: AnalyzedThreat, graph: ComponentGraph) -> str:
        if threat.targetKind == TargetKind.COMPONENT:
            return graph.component(threat.targetId).type
        return graph.component(graph.flow(threat.targetId).targetId).type

    @staticmethod
    def _clamp(value: int) -> int:
        return min(10, max(0, value))
