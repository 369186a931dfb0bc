"""STRIDE threat enumeration from a template catalog and data-flow structure."""

from typing import Optional

from .catalog import matching_templates
from .logging_config import get_logger
from .risk import RiskScorer
from .schemas import (
    AnalyzedThreat, Component, DataFlow, ImpactCIA, ImpactLevel, Likelihood,
    RiskLevel, StrideCategory, TargetKind, ThreatCatalog, ThreatSummary, ThreatTemplate,
)

logger = get_logger(__name__)


class StrideRuleEngine:
    """
    Enumerates threats for components (catalog matches) and data flows (structural rules).

    Output order is deterministic: components in input order with their templates
    in catalog order, then flows in input order. Threats are never de-duplicated.
    """

    # Structural flow rules. Likelihood x impact equals the fixed score on the shared scale.
    UNENCRYPTED_FLOW = {
        'category': StrideCategory.INFORMATION_DISCLOSURE,
        'score': 16,
        'likelihood': Likelihood.HIGH,
        'impact': ImpactLevel.CRITICAL,
        'vulnerability': 'Unencrypted data transmission',
        'attackVector': 'Network sniffing, man-in-the-middle',
        'recommendation': 'Enable TLS 1.3 for all data in transit',
        'mitigations': [
            'Enable TLS 1.3 for all data in transit',
            'Implement end-to-end encryption for sensitive data',
        ],
        'cweIds': ['CWE-319', 'CWE-311'],
        'attackTechniqueIds': ['T1557'],
    }

    UNAUTHENTICATED_FLOW = {
        'category': StrideCategory.SPOOFING,
        'score': 12,
        'likelihood': Likelihood.HIGH,
        'impact': ImpactLevel.HIGH,
        'vulnerability': 'Unauthenticated data flow',
        'attackVector': 'Request forgery, service impersonation',
        'recommendation': 'Implement mutual TLS or signed tokens on this flow',
        'mitigations': [
            'Implement mutual TLS authentication',
            'Use signed tokens or API keys',
        ],
        'cweIds': ['CWE-287', 'CWE-306'],
        'attackTechniqueIds': ['T1078'],
    }

    def __init__(
        self,
        catalog: ThreatCatalog,
        scorer: Optional[RiskScorer] = None,
        default_threat_actors: Optional[list[str]] = None,
    ):
        self.catalog = catalog
        self.scorer = scorer or RiskScorer()
        self.default_threat_actors = list(default_threat_actors or [])

    def analyze(self, components: list[Component], data_flows: list[DataFlow]) -> list[AnalyzedThreat]:
        threats: list[AnalyzedThreat] = []
        for component in components:
            component_threats = self.analyze_component(component)
            logger.debug(f"{component.id} ({component.type}): {len(component_threats)} threats")
            threats.extend(component_threats)

        names = {c.id: c.name for c in components}
        for flow in data_flows:
            threats.extend(self.analyze_flow(flow, names))

        logger.debug(f"STRIDE analysis produced {len(threats)} threats")
        return threats

    def analyze_component(self, component: Component) -> list[AnalyzedThreat]:
        return [
            self._contextualize(template, component)
            for template in matching_templates(self.catalog, component.type)
        ]

    def analyze_flow(self, flow: DataFlow, names: Optional[dict[str, str]] = None) -> list[AnalyzedThreat]:
        """Structural threats for a flow, independent of the catalog."""
        names = names or {}
        source = names.get(flow.sourceId, flow.sourceId)
        target = names.get(flow.targetId, flow.targetId)
        route = f'{source} -> {target}'

        threats = []
        if not flow.encrypted:
            threats.append(self._flow_threat(
                flow, route, self.UNENCRYPTED_FLOW,
                title=f'Unencrypted Data Flow: {route}',
                description=(
                    f'Data flowing from {source} to {target} is not encrypted, '
                    f'potentially exposing sensitive information.'
                ),
            ))
        if not flow.authenticated:
            threats.append(self._flow_threat(
                flow, route, self.UNAUTHENTICATED_FLOW,
                title=f'Unauthenticated Data Flow: {route}',
                description=(
                    f'Data flow from {source} to {target} is not authenticated, '
                    f'allowing potential spoofing attacks.'
                ),
            ))
        return threats

    def _contextualize(self, template: ThreatTemplate, component: Component) -> AnalyzedThreat:
        likelihood = self.scorer.escalate(template.likelihood, component.criticality)
        score = self.scorer.score(likelihood, template.impact, component.criticality)
        assessment = self.scorer.assess(score, likelihood, template.existingControls, template.recommendation)
        impact_cia = template.impactCIA or self._uniform_cia(template.impact)

        return AnalyzedThreat(
            targetKind=TargetKind.COMPONENT,
            targetId=component.id,
            targetName=component.name,
            templateId=template.id,
            strideCategory=template.strideCategory,
            title=f'{self._fill(template.title, component)} - {component.name}',
            description=self._fill(template.description, component),
            vulnerability=template.vulnerability,
            attackVector=template.attackVector,
            threatActor=self._actors(template.threatActors),
            skillsRequired=template.skillsRequired,
            complexity=template.complexity,
            likelihood=likelihood,
            impact=template.impact,
            impactCIA=impact_cia,
            riskScore=score,
            riskLevel=assessment.pre_control,
            existingControls=template.existingControls,
            riskAfterExisting=assessment.after_existing,
            gapRecommendation=template.recommendation,
            finalRisk=assessment.final,
            mitigations=list(template.mitigations),
            cweIds=list(template.cweIds),
            attackTechniqueIds=list(template.attackTechniqueIds),
        )

    def _flow_threat(self, flow: DataFlow, route: str, rule: dict, title: str, description: str) -> AnalyzedThreat:
        assessment = self.scorer.assess(rule['score'], rule['likelihood'], None, rule['recommendation'])
        return AnalyzedThreat(
            diagramId=flow.diagramId,
            targetKind=TargetKind.DATA_FLOW,
            targetId=flow.id,
            targetName=flow.label or route,
            strideCategory=rule['category'],
            title=title,
            description=description,
            vulnerability=rule['vulnerability'],
            attackVector=rule['attackVector'],
            threatActor=self._actors([]),
            skillsRequired='Medium',
            complexity='Medium',
            likelihood=rule['likelihood'],
            impact=rule['impact'],
            impactCIA=self._uniform_cia(rule['impact']),
            riskScore=rule['score'],
            riskLevel=assessment.pre_control,
            riskAfterExisting=assessment.after_existing,
            gapRecommendation=rule['recommendation'],
            finalRisk=assessment.final,
            mitigations=list(rule['mitigations']),
            cweIds=list(rule['cweIds']),
            attackTechniqueIds=list(rule['attackTechniqueIds']),
        )

    def _actors(self, actors: list[str]) -> str:
        return ', '.join(actors or self.default_threat_actors)

    @staticmethod
    def _fill(text: str, component: Component) -> str:
        return text.replace('{component}', component.name)

    @staticmethod
    def _uniform_cia(impact: ImpactLevel) -> str:
        return ImpactCIA(confidentiality=impact, integrity=impact, availability=impact).format()

    def mitigations_for(self, category: StrideCategory) -> list[str]:
        """De-duplicated mitigations of every catalog template in a category."""
        mitigations = []
        for template in self.catalog.by_category(category):
            for mitigation in template.mitigations:
                if mitigation not in mitigations:
                    mitigations.append(mitigation)
        return mitigations


def summarize(threats: list[AnalyzedThreat]) -> ThreatSummary:
    """Count threats per STRIDE category and per risk level; every key is present."""
    by_category = {category.value: 0 for category in StrideCategory}
    by_level = {level.value: 0 for level in RiskLevel}
    for threat in threats:
        by_category[threat.strideCategory.value] += 1
        by_level[threat.riskLevel.value] += 1
    return ThreatSummary(total=len(threats), byCategory=by_category, byRiskLevel=by_level)
