"""Shared renderer interface, legend and label helpers."""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..config import Settings, get_settings
from ..graph import ComponentGraph
from ..schemas import Component


@dataclass(frozen=True)
class LegendEntry:
    """One row of the Diagram ID mapping."""
    diagram_id: str
    component_id: str
    name: str
    type: str


def diagram_id_of(component: Component) -> str:
    return component.diagramId or component.id


def build_legend(graph: ComponentGraph) -> list[LegendEntry]:
    """One entry per component, in component order."""
    return [
        LegendEntry(diagram_id=diagram_id_of(c), component_id=c.id, name=c.name, type=c.type)
        for c in graph.components
    ]


# Substrings of the normalized component type, checked in order
COMPONENT_KINDS = [
    ('external', ('user', 'external', 'actor', 'client', 'thirdparty', 'partner')),
    ('queue', ('queue', 'sqs', 'sns', 'topic', 'stream', 'eventbus', 'eventbridge', 'kafka')),
    ('storage', ('s3', 'bucket', 'storage', 'backup', 'blob')),
    ('datastore', ('database', 'datastore', 'dynamodb', 'rds', 'cache', 'warehouse', 'snowflake', 'db')),
]


def component_kind(component_type: str) -> str:
    """Collapse a free-form component type into process, datastore, storage, queue or external."""
    normalized = re.sub(r'[^a-z0-9]', '', (component_type or '').lower())
    for kind, needles in COMPONENT_KINDS:
        if any(needle in normalized for needle in needles):
            return kind
    return 'process'


# Mermaid entity codes, usable inside quoted node, subgraph and edge labels
MERMAID_ESCAPES = str.maketrans({
    '#': '#35;',
    '"': '#quot;',
    '<': '#lt;',
    '>': '#gt;',
    '|': '#124;',
})

# PlantUML creole reads <...> as markup and | as a table cell separator
PLANTUML_ESCAPES = str.maketrans({
    '"': "'",
    '<': '&#60;',
    '>': '&#62;',
    '|': '&#124;',
})


def _one_line(text: Optional[str]) -> str:
    return ' '.join(text.split()) if text else ''


def mermaid_label(text: Optional[str]) -> str:
    """Escape text for a double-quoted Mermaid label without dropping characters."""
    return _one_line(text).translate(MERMAID_ESCAPES)


def plantuml_label(text: Optional[str]) -> str:
    """Escape text for a double-quoted PlantUML string or legend cell."""
    return _one_line(text).translate(PLANTUML_ESCAPES)


def sanitize_id(value: str) -> str:
    """Alphanumerics and underscores only, never starting with a digit."""
    safe = ''.join(ch if ch.isalnum() else '_' for ch in value.strip())
    if not safe:
        return 'node'
    if safe[0].isdigit():
        return f'n_{safe}'
    return safe


class DiagramRenderer(ABC):
    """Renders a validated, ID-annotated component graph to diagram text."""

    file_extension = 'txt'

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @abstractmethod
    def render(self, graph: ComponentGraph) -> str:
        ...

    def threat_actors(self, graph: ComponentGraph) -> list[str]:
        return list(graph.model.threatActors or self.settings.default_threat_actors)

    def flow_endpoints(self, graph: ComponentGraph, flow) -> tuple[Component, Component]:
        return graph.component(flow.sourceId), graph.component(flow.targetId)
