"""SVG 1.1 renderer using absolute coordinates from the layout engine."""

from pathlib import Path
from typing import Optional
from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..config import Settings
from ..graph import ComponentGraph
from ..layout import Box, Layout, LayoutEngine
from .base import DiagramRenderer, build_legend, component_kind, diagram_id_of


class SVGRenderer(DiagramRenderer):
    """Renders the laid-out graph through the diagram.svg template; all text is XML-escaped."""

    file_extension = 'svg'

    # (fill, stroke, text) per component kind
    PALETTE = {
        'process': ('#48BB78', '#2F855A', '#FFFFFF'),
        'datastore': ('#9F7AEA', '#6B46C1', '#FFFFFF'),
        'storage': ('#B794F4', '#805AD5', '#000000'),
        'queue': ('#81E6D9', '#38B2AC', '#000000'),
        'external': ('#A0AEC0', '#718096', '#000000'),
    }

    # (stroke, dasharray, fill) per trust boundary type
    BOUNDARY_STYLES = {
        'cloud_account': ('#3182CE', '10,5', '#EBF8FF'),
        'vpc': ('#319795', '8,4', '#E6FFFA'),
        'subnet': ('#805AD5', '6,3', '#FAF5FF'),
        'security_group': ('#E53E3E', '4,2', '#FFF5F5'),
        'external': ('#718096', '5,5', '#F7FAFC'),
    }
    DEFAULT_BOUNDARY_STYLE = ('#718096', '5,5', '#F7FAFC')

    MARKERS = [
        {'id': 'arrow-green', 'color': '#38A169'},
        {'id': 'arrow-red', 'color': '#E53E3E'},
    ]

    LEGEND_ROW_HEIGHT = 18
    LEGEND_MIN_WIDTH = 320

    def __init__(self, settings: Optional[Settings] = None, template_dir: Optional[Path] = None):
        super().__init__(settings)
        if template_dir is None:
            template_dir = Path(__file__).parent.parent / 'templates'
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(['html', 'xml', 'svg']),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.layout_engine = LayoutEngine(self.settings)

    def render(self, graph: ComponentGraph, layout: Optional[Layout] = None) -> str:
        layout = layout or self.layout_engine.layout(graph)
        legend = self._legend(graph, layout)
        width = max(layout.width, legend['x'] + legend['width'] + 20)
        height = legend['y'] + legend['height'] + 20

        template = self.env.get_template('diagram.svg')
        return template.render(
            title=graph.model.title,
            width=width,
            height=height,
            markers=self.MARKERS,
            threat_actors=self.threat_actors(graph),
            boundaries=self._boundaries(graph, layout),
            edges=self._edges(graph, layout),
            nodes=self._nodes(graph, layout),
            legend=legend,
        )

    def _nodes(self, graph: ComponentGraph, layout: Layout) -> list[dict]:
        nodes = []
        for component in graph.components:
            box = layout.nodes[component.id]
            kind = component_kind(component.type)
            fill, stroke, text = self.PALETTE[kind]
            cx, cy = box.center
            nodes.append({
                'x': box.x, 'y': box.y, 'width': box.width, 'height': box.height,
                'cx': cx, 'cy': cy,
                'radius': 20 if kind == 'external' else 6,
                'fill': fill, 'stroke': stroke, 'text': text,
                'diagram_id': diagram_id_of(component),
                'name': component.name,
            })
        return nodes

    def _boundaries(self, graph: ComponentGraph, layout: Layout) -> list[dict]:
        boundaries = []
        for boundary in graph.trust_boundaries:
            box = layout.boundaries.get(boundary.id)
            if box is None:
                continue
            stroke, dasharray, fill = self.BOUNDARY_STYLES.get(boundary.type.lower(), self.DEFAULT_BOUNDARY_STYLE)
            boundaries.append({
                'x': box.x, 'y': box.y, 'width': box.width, 'height': box.height,
                'name': boundary.name, 'stroke': stroke, 'dasharray': dasharray, 'fill': fill,
            })
        return boundaries

    def _edges(self, graph: ComponentGraph, layout: Layout) -> list[dict]:
        edges = []
        for flow in graph.data_flows:
            source = layout.nodes[flow.sourceId]
            target = layout.nodes[flow.targetId]
            (sx, sy), (tx, ty) = source.center, target.center
            x1, y1 = self._clip(source, tx - sx, ty - sy)
            x2, y2 = self._clip(target, sx - tx, sy - ty)
            edges.append({
                'x1': x1, 'y1': y1, 'x2': x2, 'y2': y2,
                'stroke': '#38A169' if flow.encrypted else '#E53E3E',
                'marker': 'arrow-green' if flow.encrypted else 'arrow-red',
                'width': 2.5 if flow.crossesTrustBoundary else 1.5,
                'dasharray': '6,4' if flow.crossesTrustBoundary else '',
                'label': flow.label,
                'label_x': round((x1 + x2) / 2, 1),
                'label_y': round((y1 + y2) / 2 - 6, 1),
            })
        return edges

    def _legend(self, graph: ComponentGraph, layout: Layout) -> dict:
        entries = build_legend(graph)
        x = self.settings.origin_x
        y = layout.height
        rows = []
        for index, entry in enumerate(entries):
            rows.append({
                'diagram_id': entry.diagram_id,
                'name': entry.name,
                'y': y + 38 + index * self.LEGEND_ROW_HEIGHT,
            })
        longest = max((len(e.diagram_id) + len(e.name) for e in entries), default=0)
        return {
            'x': x,
            'y': y,
            'width': max(self.LEGEND_MIN_WIDTH, 40 + longest * 7),
            'height': 30 + max(len(entries), 1) * self.LEGEND_ROW_HEIGHT,
            'entries': rows,
        }

    @staticmethod
    def _clip(box: Box, dx: float, dy: float) -> tuple[float, float]:
        """Point where a ray from the box center in direction (dx, dy) leaves the box."""
        cx, cy = box.center
        if dx == 0 and dy == 0:
            return cx, cy
        scales = []
        if dx:
            scales.append((box.width / 2) / abs(dx))
        if dy:
            scales.append((box.height / 2) / abs(dy))
        t = min(scales)
        return round(cx + dx * t, 1), round(cy + dy * t, 1)
