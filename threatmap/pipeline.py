"""End-to-end threat-model generation for one request."""

from dataclasses import dataclass
from typing import Optional, Union

from .attack_tree import AttackTreeGenerator
from .catalog import load_catalog
from .config import Settings, get_settings
from .diagram_ids import DiagramIdAllocator
from .dread import DreadCalculator
from .exporter import TabularExporter
from .graph import ComponentGraph
from .layout import Layout, LayoutEngine
from .logging_config import get_logger
from .renderers import DiagramFormat, SVGRenderer, get_renderer
from .risk import RiskScorer
from .schemas import AnalyzedThreat, ThreatCatalog, ThreatModelGraph, ThreatSummary
from .stride import StrideRuleEngine, summarize

logger = get_logger(__name__)


@dataclass
class AnalysisResult:
    """Everything derived from one input graph. The input graph itself is left untouched."""
    graph: ComponentGraph
    threats: list[AnalyzedThreat]
    summary: ThreatSummary
    layout: Layout


class ThreatModelPipeline:
    """Validate, analyze, allocate diagram IDs and lay out a graph; render and export the result."""

    def __init__(
        self,
        catalog: Optional[ThreatCatalog] = None,
        settings: Optional[Settings] = None,
        scorer: Optional[RiskScorer] = None,
        dread: Optional[bool] = None,
    ):
        self.settings = settings or get_settings()
        self.catalog = catalog or load_catalog()
        self.engine = StrideRuleEngine(
            self.catalog,
            scorer or RiskScorer(),
            default_threat_actors=self.settings.default_threat_actors,
        )
        self.allocator = DiagramIdAllocator()
        self.layout_engine = LayoutEngine(self.settings)
        use_dread = self.settings.dread_scoring if dread is None else dread
        self.dread = DreadCalculator() if use_dread else None

    def generate(self, graph: ThreatModelGraph) -> AnalysisResult:
        validated = ComponentGraph.build(graph)
        annotated = validated.with_model(self.allocator.allocate(validated.model))

        engine = self.engine
        if annotated.model.threatActors:
            engine = StrideRuleEngine(self.catalog, self.engine.scorer, annotated.model.threatActors)
        threats = engine.analyze(annotated.components, annotated.data_flows)
        threats = self.allocator.annotate_threats(threats, annotated.model)
        if self.dread:
            threats = self.dread.annotate(threats, annotated)

        summary = summarize(threats)
        layout = self.layout_engine.layout(annotated)
        logger.info(
            f"'{annotated.model.title}': {summary.total} threats "
            f"({summary.byRiskLevel.get('critical', 0)} critical, {summary.byRiskLevel.get('high', 0)} high)"
        )
        return AnalysisResult(graph=annotated, threats=threats, summary=summary, layout=layout)

    def render(self, result: AnalysisResult, fmt: Union[str, DiagramFormat]) -> str:
        renderer = get_renderer(fmt, self.settings)
        if isinstance(renderer, SVGRenderer):
            return renderer.render(result.graph, result.layout)
        return renderer.render(result.graph)

    def exporter(self, result: AnalysisResult) -> TabularExporter:
        return TabularExporter(result.graph, result.threats, self.settings)

    def attack_tree(self, result: AnalysisResult) -> AttackTreeGenerator:
        return AttackTreeGenerator(result.graph, result.threats)


def generate(graph: ThreatModelGraph, catalog: Optional[ThreatCatalog] = None) -> AnalysisResult:
    """Run the pipeline with default settings."""
    return ThreatModelPipeline(catalog=catalog).generate(graph)
