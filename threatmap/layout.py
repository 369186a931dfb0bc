"""Grid layout of components and trust-boundary boxes."""

from dataclasses import dataclass, field
from typing import Optional

from .config import Settings, get_settings
from .graph import ComponentGraph
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Box:
    """An axis-aligned rectangle in diagram coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


@dataclass
class Layout:
    """Node boxes by component id and boundary boxes by boundary id."""
    nodes: dict[str, Box] = field(default_factory=dict)
    boundaries: dict[str, Box] = field(default_factory=dict)
    width: float = 0
    height: float = 0


class LayoutEngine:
    """
    Places components on a fixed-size grid.

    Each trust boundary is a block of at most `layout_columns` columns filled
    row-major in component order. Blocks are tiled left to right in order of
    first appearance, components outside any boundary last.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def layout(self, graph: ComponentGraph) -> Layout:
        s = self.settings
        result = Layout()
        x_cursor = s.origin_x

        for boundary_id, members in self._blocks(graph):
            columns = min(len(members), s.layout_columns)
            for index, component_id in enumerate(members):
                row, col = divmod(index, s.layout_columns)
                result.nodes[component_id] = Box(
                    x=x_cursor + col * s.cell_width + (s.cell_width - s.node_width) / 2,
                    y=s.origin_y + row * s.cell_height + (s.cell_height - s.node_height) / 2,
                    width=s.node_width,
                    height=s.node_height,
                )
            if boundary_id is not None:
                result.boundaries[boundary_id] = self._enclose([result.nodes[m] for m in members])
            x_cursor += columns * s.cell_width + s.boundary_gap

        boxes = list(result.nodes.values()) + list(result.boundaries.values())
        result.width = max((b.right for b in boxes), default=s.origin_x) + s.origin_x
        result.height = max((b.bottom for b in boxes), default=s.origin_y) + s.origin_y
        logger.debug(f"Layout: {len(result.nodes)} nodes, {len(result.boundaries)} boundaries, "
                     f"{result.width}x{result.height}")
        return result

    def _blocks(self, graph: ComponentGraph) -> list[tuple[Optional[str], list[str]]]:
        blocks: dict[Optional[str], list[str]] = {}
        for component in graph.components:
            blocks.setdefault(graph.boundary_of(component.id), []).append(component.id)
        unbounded = blocks.pop(None, None)
        ordered = list(blocks.items())
        if unbounded:
            ordered.append((None, unbounded))
        return ordered

    def _enclose(self, boxes: list[Box]) -> Box:
        pad = self.settings.boundary_padding
        left = min(b.x for b in boxes) - pad
        top = min(b.y for b in boxes) - pad
        right = max(b.right for b in boxes) + pad
        bottom = max(b.bottom for b in boxes) + pad
        return Box(x=left, y=top, width=right - left, height=bottom - top)
