"""Graphviz DOT renderer."""

from graphviz import Digraph

from ..graph import ComponentGraph
from .base import DiagramRenderer, build_legend, component_kind, diagram_id_of


class DotRenderer(DiagramRenderer):
    """Renders DOT source with one dashed cluster per trust boundary and a legend note."""

    file_extension = 'dot'

    SHAPES = {
        'datastore': 'cylinder',
        'storage': 'folder',
        'queue': 'cds',
        'external': 'box',
        'process': 'ellipse',
    }

    BOUNDARY_COLORS = {
        'cloud_account': '#3182CE',
        'vpc': '#319795',
        'subnet': '#805AD5',
        'security_group': '#E53E3E',
        'external': '#718096',
    }

    def build(self, graph: ComponentGraph) -> Digraph:
        dot = Digraph(
            name='threat_model',
            comment=f'Threat model: {graph.model.title}',
            engine='dot',
        )
        dot.attr(rankdir='LR', nodesep='0.8', ranksep='1.2', fontname='Arial', fontsize='12')
        dot.attr('node', fontname='Arial', fontsize='10')
        dot.attr('edge', fontname='Arial', fontsize='9')

        bounded = set()
        for boundary in graph.trust_boundaries:
            if not boundary.memberComponentIds:
                continue
            with dot.subgraph(name=f'cluster_{boundary.id}') as cluster:
                cluster.attr(
                    label=boundary.name,
                    style='dashed',
                    color=self.BOUNDARY_COLORS.get(boundary.type.lower(), '#718096'),
                    fontcolor='#333333',
                )
                for component_id in boundary.memberComponentIds:
                    self._node(cluster, graph.component(component_id))
                    bounded.add(component_id)
        for component in graph.components:
            if component.id not in bounded:
                self._node(dot, component)

        for flow in graph.data_flows:
            source, target = self.flow_endpoints(graph, flow)
            edge_attrs = {
                'label': flow.label,
                'tooltip': f'{flow.protocol or "N/A"} - {flow.dataType or "unclassified"}',
                'color': '#38A169' if flow.encrypted else '#E53E3E',
            }
            if flow.crossesTrustBoundary:
                edge_attrs.update(penwidth='2.0', style='dashed')
            dot.edge(diagram_id_of(source), diagram_id_of(target), **edge_attrs)

        legend = build_legend(graph)
        if legend:
            text = '\\l'.join(f'{e.diagram_id} = {e.name}' for e in legend) + '\\l'
            dot.node('legend', label=f'Diagram ID Mapping\\l{text}', shape='note', fontsize='9')
        return dot

    def render(self, graph: ComponentGraph) -> str:
        return self.build(graph).source

    def _node(self, target: Digraph, component) -> None:
        diagram_id = diagram_id_of(component)
        target.node(
            diagram_id,
            label=f'{diagram_id}\n{component.name}',
            shape=self.SHAPES[component_kind(component.type)],
            style='filled',
            fillcolor='white',
            tooltip=component.description or component.name,
        )
