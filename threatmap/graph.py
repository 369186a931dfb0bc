"""Component graph validation and trust-boundary resolution."""

from typing import Optional

from .exceptions import ValidationError
from .logging_config import get_logger
from .schemas import Component, DataFlow, ThreatModelGraph, TrustBoundary

logger = get_logger(__name__)


class ComponentGraph:
    """
    A validated, independent copy of a ThreatModelGraph.

    Build instances with ComponentGraph.build(); the caller's graph is never
    touched. Trust-boundary membership is resolved once: explicit boundary
    members first, then components naming a boundary by id or name. Boundaries
    named only by components are derived as TB-<n>.
    """

    DERIVED_BOUNDARY_TYPE = 'derived'

    def __init__(self, model: ThreatModelGraph, membership: dict[str, str]):
        self.model = model
        self._membership = membership
        self._components = {c.id: c for c in model.components}
        self._flows = {f.id: f for f in model.dataFlows}
        self._boundaries = {b.id: b for b in model.trustBoundaries}

    @classmethod
    def build(cls, graph: ThreatModelGraph) -> 'ComponentGraph':
        model = graph.model_copy(deep=True)
        cls.validate(model)

        boundaries, membership = cls._resolve_boundaries(model)
        flows = [cls._with_crossing(flow, membership) for flow in model.dataFlows]
        model = model.model_copy(update={'trustBoundaries': boundaries, 'dataFlows': flows})

        logger.debug(
            f"Graph '{model.title}': {len(model.components)} components, "
            f"{len(flows)} flows, {len(boundaries)} trust boundaries"
        )
        return cls(model, membership)

    @staticmethod
    def validate(graph: ThreatModelGraph) -> None:
        """Raise ValidationError listing every unresolved or conflicting reference."""
        errors = []
        missing = []

        component_ids = set()
        for component in graph.components:
            if component.id in component_ids:
                errors.append(f"duplicate component id '{component.id}'")
            component_ids.add(component.id)

        flow_ids = set()
        for flow in graph.dataFlows:
            if flow.id in flow_ids:
                errors.append(f"duplicate data flow id '{flow.id}'")
            flow_ids.add(flow.id)
            for end, ref in (('source', flow.sourceId), ('target', flow.targetId)):
                if ref not in component_ids:
                    errors.append(f"data flow '{flow.id}' {end} '{ref}' does not exist")
                    if ref not in missing:
                        missing.append(ref)

        for boundary in graph.trustBoundaries:
            for member in boundary.memberComponentIds:
                if member not in component_ids:
                    errors.append(f"trust boundary '{boundary.id}' member '{member}' does not exist")
                    if member not in missing:
                        missing.append(member)

        seen_diagram_ids = {}
        for item in [*graph.components, *graph.dataFlows]:
            if not item.diagramId:
                continue
            if item.diagramId in seen_diagram_ids:
                errors.append(
                    f"diagram id '{item.diagramId}' used by both "
                    f"'{seen_diagram_ids[item.diagramId]}' and '{item.id}'"
                )
            else:
                seen_diagram_ids[item.diagramId] = item.id

        if errors:
            raise ValidationError(
                f"Invalid component graph: {'; '.join(errors)}",
                missing=missing,
                details={'errors': errors},
            )

    @classmethod
    def _resolve_boundaries(cls, model: ThreatModelGraph) -> tuple[list[TrustBoundary], dict[str, str]]:
        boundaries = list(model.trustBoundaries)
        membership: dict[str, str] = {}

        for boundary in boundaries:
            for member in boundary.memberComponentIds:
                membership.setdefault(member, boundary.id)

        for component in model.components:
            if component.id in membership or not component.trustBoundary:
                continue
            boundary = cls._find_boundary(boundaries, component.trustBoundary)
            if boundary is None:
                taken = {b.id for b in boundaries}
                index = len(boundaries) + 1
                while f'TB-{index}' in taken:
                    index += 1
                boundary = TrustBoundary(
                    id=f'TB-{index}',
                    name=component.trustBoundary,
                    type=cls.DERIVED_BOUNDARY_TYPE,
                )
                boundaries.append(boundary)
            membership[component.id] = boundary.id

        # Members listed in component order, one boundary per component
        resolved = [
            b.model_copy(update={
                'memberComponentIds': [c.id for c in model.components if membership.get(c.id) == b.id]
            })
            for b in boundaries
        ]
        return resolved, membership

    @staticmethod
    def _find_boundary(boundaries: list[TrustBoundary], ref: str) -> Optional[TrustBoundary]:
        for boundary in boundaries:
            if boundary.id == ref:
                return boundary
        for boundary in boundaries:
            if boundary.name == ref:
                return boundary
        return None

    @staticmethod
    def _with_crossing(flow: DataFlow, membership: dict[str, str]) -> DataFlow:
        if flow.crossesTrustBoundary is not None:
            return flow
        crosses = membership.get(flow.sourceId) != membership.get(flow.targetId)
        return flow.model_copy(update={'crossesTrustBoundary': crosses})

    @property
    def components(self) -> list[Component]:
        return self.model.components

    @property
    def data_flows(self) -> list[DataFlow]:
        return self.model.dataFlows

    @property
    def trust_boundaries(self) -> list[TrustBoundary]:
        return self.model.trustBoundaries

    def component(self, component_id: str) -> Component:
        return self._components[component_id]

    def flow(self, flow_id: str) -> DataFlow:
        return self._flows[flow_id]

    def boundary(self, boundary_id: str) -> TrustBoundary:
        return self._boundaries[boundary_id]

    def boundary_of(self, component_id: str) -> Optional[str]:
        return self._membership.get(component_id)

    def with_model(self, model: ThreatModelGraph) -> 'ComponentGraph':
        """Return a graph over an annotated copy of this model, keeping boundary membership."""
        return ComponentGraph(model, dict(self._membership))

    def to_model(self) -> ThreatModelGraph:
        return self.model.model_copy(deep=True)
