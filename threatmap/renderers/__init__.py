"""Diagram renderers selected by output format."""

from enum import Enum
from typing import Optional, Union

from ..config import Settings
from ..exceptions import RenderError
from .base import DiagramRenderer, LegendEntry, build_legend
from .dot import DotRenderer
from .mermaid import MermaidRenderer
from .plantuml import PlantUMLRenderer
from .svg import SVGRenderer


class DiagramFormat(str, Enum):
    MERMAID = 'mermaid'
    SVG = 'svg'
    PLANTUML = 'plantuml'
    DOT = 'dot'


RENDERERS: dict[DiagramFormat, type[DiagramRenderer]] = {
    DiagramFormat.MERMAID: MermaidRenderer,
    DiagramFormat.SVG: SVGRenderer,
    DiagramFormat.PLANTUML: PlantUMLRenderer,
    DiagramFormat.DOT: DotRenderer,
}


def get_renderer(fmt: Union[str, DiagramFormat], settings: Optional[Settings] = None) -> DiagramRenderer:
    """Instantiate the renderer registered for a format."""
    try:
        fmt = DiagramFormat(fmt.lower() if isinstance(fmt, str) else fmt)
    except ValueError:
        raise RenderError(
            f"Unknown diagram format: {fmt!r}",
            details={'supported': [f.value for f in DiagramFormat]},
        )
    return RENDERERS[fmt](settings)


__all__ = [
    'DiagramFormat', 'DiagramRenderer', 'LegendEntry', 'RENDERERS',
    'build_legend', 'get_renderer',
    'DotRenderer', 'MermaidRenderer', 'PlantUMLRenderer', 'SVGRenderer',
]
