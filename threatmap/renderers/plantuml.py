"""PlantUML component diagram renderer."""

from ..graph import ComponentGraph
from .base import DiagramRenderer, build_legend, component_kind, diagram_id_of, plantuml_label, sanitize_id


class PlantUMLRenderer(DiagramRenderer):
    """Renders packages per trust boundary, typed elements, threat actors and a legend table."""

    file_extension = 'puml'

    STEREOTYPES = {
        'datastore': 'database',
        'storage': 'storage',
        'queue': 'queue',
        'external': 'actor',
        'process': 'component',
    }

    ENCRYPTED_ARROW = '-[#38A169]->'
    UNENCRYPTED_ARROW = '-[#E53E3E,dashed]->'
    CROSSING_ARROW = '-[#D69E2E,bold]->'

    def render(self, graph: ComponentGraph) -> str:
        lines = ['@startuml', '']
        lines.append(f'title {plantuml_label(graph.model.title)} - Threat Model')
        lines.append('')
        lines.append('skinparam {')
        lines.append('    BackgroundColor white')
        lines.append('    ArrowFontSize 10')
        lines.append('    PackageBorderStyle dashed')
        lines.append('    PackageBorderColor #3182CE')
        lines.append('    ComponentBackgroundColor #ecf0f1')
        lines.append('}')
        lines.append('')

        lines.append("' === THREAT ACTORS ===")
        for index, actor in enumerate(self.threat_actors(graph), start=1):
            lines.append(f'actor "{plantuml_label(actor)}" as threat_actor_{index} #FED7D7')
        lines.append('')

        lines.append("' === TRUST BOUNDARIES ===")
        bounded = set()
        for boundary in graph.trust_boundaries:
            if not boundary.memberComponentIds:
                continue
            lines.append(f'package "{plantuml_label(boundary.name)}" as {sanitize_id(boundary.id)} {{')
            for component_id in boundary.memberComponentIds:
                lines.append(f'    {self._element(graph.component(component_id))}')
                bounded.add(component_id)
            lines.append('}')
            lines.append('')
        for component in graph.components:
            if component.id not in bounded:
                lines.append(self._element(component))
        lines.append('')

        lines.append("' === DATA FLOWS ===")
        for flow in graph.data_flows:
            source, target = self.flow_endpoints(graph, flow)
            if flow.crossesTrustBoundary:
                arrow = self.CROSSING_ARROW
            elif flow.encrypted:
                arrow = self.ENCRYPTED_ARROW
            else:
                arrow = self.UNENCRYPTED_ARROW
            label = plantuml_label(flow.label)
            if flow.protocol:
                label = f'{label} {plantuml_label(flow.protocol)}'.strip()
            suffix = f' : {label}' if label else ''
            lines.append(f'{sanitize_id(diagram_id_of(source))} {arrow} {sanitize_id(diagram_id_of(target))}{suffix}')
        lines.append('')

        lines.append("' === LEGEND ===")
        lines.append('legend right')
        lines.append('    |= Diagram ID |= Component |')
        for entry in build_legend(graph):
            lines.append(f'    | {plantuml_label(entry.diagram_id)} | {plantuml_label(entry.name)} |')
        lines.append('    | <color:#38A169>--></color> | Encrypted flow |')
        lines.append('    | <color:#E53E3E>--></color> | Unencrypted flow |')
        lines.append('    | <color:#D69E2E>--></color> | Crosses trust boundary |')
        lines.append('endlegend')
        lines.append('')
        lines.append(f'footer Generated from {plantuml_label(graph.model.title)} v{plantuml_label(graph.model.version)}')
        lines.append('')
        lines.append('@enduml')
        return '\n'.join(lines)

    def _element(self, component) -> str:
        keyword = self.STEREOTYPES[component_kind(component.type)]
        diagram_id = diagram_id_of(component)
        text = plantuml_label(f'{diagram_id}: {component.name}')
        return f'{keyword} "{text}" as {sanitize_id(diagram_id)} <<{plantuml_label(component.type)}>>'
