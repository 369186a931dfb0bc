"""Mermaid flowchart renderer."""

from ..graph import ComponentGraph
from .base import DiagramRenderer, build_legend, component_kind, diagram_id_of, mermaid_label, sanitize_id


class MermaidRenderer(DiagramRenderer):
    """Renders a left-to-right Mermaid flowchart with one subgraph per trust boundary."""

    file_extension = 'mmd'

    SHAPES = {
        'datastore': ('[(', ')]'),
        'storage': ('[(', ')]'),
        'external': ('([', '])'),
        'queue': ('[[', ']]'),
        'process': ('[', ']'),
    }

    # Words Mermaid reads as syntax when used as a bare node id
    RESERVED_IDS = {
        'end', 'graph', 'flowchart', 'subgraph', 'direction', 'style', 'class',
        'classdef', 'click', 'linkstyle', 'default', 'legend',
    }

    ENCRYPTED_MARKER = '🔒 '
    CROSSING_MARKER = '⚠ '

    def render(self, graph: ComponentGraph) -> str:
        lines = ['flowchart LR']

        bounded = set()
        for boundary in graph.trust_boundaries:
            if not boundary.memberComponentIds:
                continue
            lines.append(f'    subgraph {self._boundary_id(boundary)}["{mermaid_label(boundary.name)}"]')
            for component_id in boundary.memberComponentIds:
                lines.append(f'        {self._node(graph.component(component_id))}')
                bounded.add(component_id)
            lines.append('    end')

        for component in graph.components:
            if component.id not in bounded:
                lines.append(f'    {self._node(component)}')

        for flow in graph.data_flows:
            source, target = self.flow_endpoints(graph, flow)
            label = mermaid_label(flow.label)
            if flow.encrypted:
                label = f'{self.ENCRYPTED_MARKER}{label}'
            if flow.crossesTrustBoundary:
                label = f'{self.CROSSING_MARKER}{label}'
                arrow = '-.->'
            else:
                arrow = '-->'
            edge = f'|"{label.strip()}"| ' if label.strip() else ''
            lines.append(f'    {self._node_id(source)} {arrow}{edge}{self._node_id(target)}')

        legend = build_legend(graph)
        if legend:
            lines.append('    subgraph legend["Diagram ID Mapping"]')
            lines.append('        direction TB')
            for entry in legend:
                text = mermaid_label(f'{entry.diagram_id} = {entry.name}')
                lines.append(f'        legend_{sanitize_id(entry.diagram_id)}["{text}"]')
            lines.append('    end')

        lines.append('')
        lines.append('    classDef legendEntry fill:#f7fafc,stroke:#cbd5e0,font-size:11px')
        if legend:
            legend_ids = ','.join(f'legend_{sanitize_id(e.diagram_id)}' for e in legend)
            lines.append(f'    class {legend_ids} legendEntry')
        return '\n'.join(lines)

    def _node(self, component) -> str:
        opening, closing = self.SHAPES[component_kind(component.type)]
        text = mermaid_label(f'{diagram_id_of(component)}: {component.name}')
        return f'{self._node_id(component)}{opening}"{text}"{closing}'

    def _node_id(self, component) -> str:
        node_id = sanitize_id(diagram_id_of(component))
        if node_id.lower() in self.RESERVED_IDS:
            return f'n_{node_id}'
        return node_id

    @staticmethod
    def _boundary_id(boundary) -> str:
        # Distinct from node ids, the legend subgraph and Mermaid keywords
        return f'tb_{sanitize_id(boundary.id)}'
