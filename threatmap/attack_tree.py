"""Attack trees built from analyzed STRIDE threats."""

from dataclasses import dataclass, field
from typing import Optional
from graphviz import Digraph

from .exceptions import RenderError
from .graph import ComponentGraph
from .renderers.base import mermaid_label
from .schemas import AnalyzedThreat, RiskLevel, StrideCategory, TargetKind, ThreatStatus


@dataclass
class AttackNode:
    """A node in the attack tree."""
    id: str
    label: str
    node_type: str
    children: list['AttackNode'] = field(default_factory=list)
    mitigated: bool = False
    threat_ref: Optional[str] = None
    risk_score: float = 0.0
    risk_level: Optional[RiskLevel] = None

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


class AttackTreeGenerator:
    """
    Arranges threats as goal -> STRIDE sub-goal -> attack trees.

    Every threatened component or data flow becomes a goal ("Compromise X").
    Its threats are grouped under one OR node per STRIDE category, in category
    order. Each threat is an attack node whose children are its attack vector,
    the controls already in place and the recommended mitigations.
    """

    RISK_STYLES = {
        RiskLevel.CRITICAL: 'fill:#8B0000,stroke:#5c0000,color:#fff,stroke-width:2px',
        RiskLevel.HIGH: 'fill:#e74c3c,stroke:#c0392b,color:#fff,stroke-width:2px',
        RiskLevel.MEDIUM: 'fill:#f39c12,stroke:#d68910,color:#fff,stroke-width:2px',
        RiskLevel.LOW: 'fill:#f1c40f,stroke:#d4ac0d,color:#2c3e50,stroke-width:2px',
    }

    GRAPHVIZ_STYLES = {
        'goal': {'shape': 'invhouse', 'fillcolor': '#ffcccc', 'style': 'filled'},
        'target': {'shape': 'box', 'fillcolor': '#d6eaf8', 'style': 'filled'},
        'or': {'shape': 'triangle', 'fillcolor': '#ffffcc', 'style': 'filled'},
        'attack': {'shape': 'box', 'fillcolor': '#ffdddd', 'style': 'filled,rounded'},
        'vector': {'shape': 'note', 'fillcolor': '#fdebd0', 'style': 'filled'},
        'countermeasure': {'shape': 'octagon', 'fillcolor': '#ddffdd', 'style': 'filled'},
    }

    TEXT_ICONS = {
        'goal': '[G]',
        'target': '[T]',
        'or': '[OR]',
        'attack': '[A]',
        'vector': '[V]',
        'countermeasure': '[M]',
    }

    def __init__(self, graph: ComponentGraph, threats: list[AnalyzedThreat]):
        self.graph = graph
        self.threats = threats

    @staticmethod
    def _wrap_text(text: str, width: int = 50) -> str:
        if not text or len(text) <= width:
            return text or ''
        return text[:width - 3] + '...'

    def _targets(self) -> list[tuple[tuple[TargetKind, str], list[tuple[int, AnalyzedThreat]]]]:
        # Threat list order: components first, then flows
        groups: dict[tuple[TargetKind, str], list[tuple[int, AnalyzedThreat]]] = {}
        for index, threat in enumerate(self.threats, start=1):
            groups.setdefault((threat.targetKind, threat.targetId), []).append((index, threat))
        return list(groups.items())

    def _target_label(self, kind: TargetKind, target_id: str, threat: AnalyzedThreat) -> str:
        if kind == TargetKind.COMPONENT:
            name = self.graph.component(target_id).name
        else:
            flow = self.graph.flow(target_id)
            source, target = self.graph.component(flow.sourceId), self.graph.component(flow.targetId)
            name = f'{source.name} -> {target.name}'
        prefix = f'{threat.diagramId}: ' if threat.diagramId else ''
        return f'Compromise {prefix}{name}'

    def _threat_node(self, index: int, threat: AnalyzedThreat) -> AttackNode:
        node = AttackNode(
            id=f'threat_{index}',
            label=threat.title,
            node_type='attack',
            threat_ref=threat.diagramId,
            mitigated=threat.status == ThreatStatus.MITIGATED,
            risk_score=threat.riskScore,
            risk_level=threat.riskLevel,
        )
        if threat.attackVector:
            node.children.append(AttackNode(id=f'threat_{index}_vector', label=threat.attackVector, node_type='vector'))
        if threat.existingControls:
            node.children.append(AttackNode(
                id=f'threat_{index}_existing',
                label=threat.existingControls,
                node_type='countermeasure',
                mitigated=True,
            ))
        for number, mitigation in enumerate(threat.mitigations, start=1):
            node.children.append(AttackNode(
                id=f'threat_{index}_cm_{number}',
                label=mitigation,
                node_type='countermeasure',
                mitigated=node.mitigated,
            ))
        return node

    def _target_node(self, number: int, kind: TargetKind, target_id: str,
                     threats: list[tuple[int, AnalyzedThreat]]) -> AttackNode:
        goal = AttackNode(
            id=f'goal_{number}',
            label=self._target_label(kind, target_id, threats[0][1]),
            node_type='target',
            threat_ref=threats[0][1].diagramId,
        )
        for category in StrideCategory:
            in_category = [(i, t) for i, t in threats if t.strideCategory == category]
            if not in_category:
                continue
            sub_goal = AttackNode(id=f'goal_{number}_{category.value}', label=category.label, node_type='or')
            sub_goal.children = [self._threat_node(i, t) for i, t in in_category]
            sub_goal.mitigated = all(child.mitigated for child in sub_goal.children)
            goal.children.append(sub_goal)
        goal.mitigated = all(child.mitigated for child in goal.children)
        return goal

    def generate_tree(self, target_id: Optional[str] = None) -> AttackNode:
        """Whole-model tree, or the subtree of one component or flow when target_id is given."""
        targets = self._targets()
        if target_id is not None:
            for number, ((kind, tid), threats) in enumerate(targets, start=1):
                if tid == target_id:
                    return self._target_node(number, kind, tid, threats)
            raise RenderError(f"No threats target '{target_id}'", details={'target': target_id})

        root = AttackNode(id='root', label=f'Compromise: {self.graph.model.title}', node_type='goal')
        root.children = [
            self._target_node(number, kind, tid, threats)
            for number, ((kind, tid), threats) in enumerate(targets, start=1)
        ]
        root.mitigated = bool(root.children) and all(child.mitigated for child in root.children)
        return root

    def to_mermaid(self, target_id: Optional[str] = None) -> str:
        tree = self.generate_tree(target_id)
        lines = ['graph LR']
        styles = []
        for node in tree.walk():
            lines.append(f'    {self._mermaid_node(node)}')
            for child in node.children:
                arrow = '-.->' if child.node_type == 'countermeasure' else '-->'
                lines.append(f'    {node.id} {arrow} {child.id}')
            style = self._mermaid_style(node)
            if style:
                styles.append(f'    style {node.id} {style}')
        if styles:
            lines.append('')
            lines.extend(styles)
        return '\n'.join(lines)

    def _mermaid_node(self, node: AttackNode) -> str:
        text = self._wrap_text(node.label)
        if node.node_type == 'goal':
            return f'{node.id}(["{mermaid_label(text)}"])'
        if node.node_type == 'or':
            return f'{node.id}{{"OR: {mermaid_label(text)}"}}'
        if node.node_type == 'attack':
            level = node.risk_level.value.title() if node.risk_level else ''
            ref = f'{node.threat_ref}: ' if node.threat_ref else ''
            label = f'{ref}{text} | {node.risk_score:.1f} {level}'.strip()
            return f'{node.id}["{mermaid_label(label)}"]'
        if node.node_type == 'vector':
            return f'{node.id}>"{mermaid_label(self._wrap_text(node.label, 40))}"]'
        if node.node_type == 'countermeasure':
            status = 'DONE' if node.mitigated else 'TODO'
            return f'{node.id}(["{status}: {mermaid_label(self._wrap_text(node.label, 40))}"])'
        return f'{node.id}["{mermaid_label(text)}"]'

    def _mermaid_style(self, node: AttackNode) -> Optional[str]:
        if node.node_type == 'goal':
            return 'fill:#2c3e50,stroke:#1a252f,color:#fff,stroke-width:3px'
        if node.node_type == 'target':
            return 'fill:#3498db,stroke:#2980b9,color:#fff'
        if node.node_type == 'attack':
            return self.RISK_STYLES.get(node.risk_level)
        if node.node_type == 'countermeasure':
            if node.mitigated:
                return 'fill:#27ae60,stroke:#1e8449,color:#fff'
            return 'fill:#f8f9fa,stroke:#7f8c8d,color:#2c3e50'
        return None

    def to_graphviz(self, target_id: Optional[str] = None) -> Digraph:
        tree = self.generate_tree(target_id)
        graph = Digraph(
            name='attack_tree',
            comment=f'Attack Tree: {self.graph.model.title}',
            engine='dot',
        )
        graph.attr(rankdir='TB', nodesep='0.5', ranksep='0.8', fontname='Arial', bgcolor='white')
        graph.attr('node', fontname='Arial', fontsize='10')
        graph.attr('edge', fontname='Arial', fontsize='8')
        self._add_node_to_graph(graph, tree)
        return graph

    def to_dot(self, target_id: Optional[str] = None) -> str:
        return self.to_graphviz(target_id).source

    def _add_node_to_graph(self, graph: Digraph, node: AttackNode, parent_id: Optional[str] = None) -> None:
        style = dict(self.GRAPHVIZ_STYLES.get(node.node_type, {}))
        if node.mitigated:
            style['fillcolor'] = '#aaffaa'
            style['penwidth'] = '2'
        label = f'OR\n{node.label}' if node.node_type == 'or' else node.label
        if node.node_type == 'attack':
            label = f'{node.label}\n{node.risk_score:.1f}'
        graph.node(node.id, label=label, **style)
        if parent_id:
            edge_style = {}
            if node.node_type == 'countermeasure':
                edge_style = {'style': 'dashed', 'color': 'green', 'label': 'mitigates'}
            graph.edge(parent_id, node.id, **edge_style)
        for child in node.children:
            self._add_node_to_graph(graph, child, node.id)

    def to_text(self, target_id: Optional[str] = None) -> str:
        return self._node_to_text(self.generate_tree(target_id))

    def _node_to_text(self, node: AttackNode, indent: int = 0) -> str:
        prefix = '  ' * indent
        icon = self.TEXT_ICONS.get(node.node_type, '*')
        status = ''
        if node.mitigated:
            status = ' [IN PLACE]' if node.node_type == 'countermeasure' else ' [MITIGATED]'
        score = f' ({node.risk_score:.1f})' if node.node_type == 'attack' else ''
        lines = [f'{prefix}{icon} {node.label}{score}{status}']
        for child in node.children:
            lines.append(self._node_to_text(child, indent + 1))
        return '\n'.join(lines)
