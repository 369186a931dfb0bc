"""LayoutEngine tests."""

from threatmap.graph import ComponentGraph
from threatmap.layout import Box, LayoutEngine
from threatmap.schemas import Component, ThreatModelGraph, TrustBoundary


def test_blocks_tiled_in_first_appearance_order(settings, sample_graph):
    layout = LayoutEngine(settings).layout(ComponentGraph.build(sample_graph))

    # 'user' appears first, so its derived boundary is the leftmost block
    assert layout.nodes['user'] == Box(x=120, y=120, width=140, height=60)
    assert layout.nodes['api'].x == 360
    assert layout.nodes['fn'].x == 540
    assert layout.nodes['db'].x == 720
    assert {box.y for box in layout.nodes.values()} == {120}


def test_boundary_box_encloses_members_with_padding(settings, sample_graph):
    layout = LayoutEngine(settings).layout(ComponentGraph.build(sample_graph))

    assert layout.boundaries['TB-2'] == Box(x=100, y=100, width=180, height=100)
    vpc = layout.boundaries['TB-1']
    assert (vpc.x, vpc.y, vpc.right, vpc.bottom) == (340, 100, 880, 200)
    for member in ('api', 'fn', 'db'):
        node = layout.nodes[member]
        assert vpc.x < node.x and node.right < vpc.right


def test_canvas_size(settings, sample_graph):
    layout = LayoutEngine(settings).layout(ComponentGraph.build(sample_graph))
    assert (layout.width, layout.height) == (980, 300)


def test_rows_wrap_after_column_limit(settings):
    graph = ComponentGraph.build(ThreatModelGraph(
        components=[Component(id=f'c{i}', name=f'C{i}') for i in range(8)]
    ))
    layout = LayoutEngine(settings).layout(graph)

    assert layout.nodes['c5'].y == 120
    assert (layout.nodes['c6'].x, layout.nodes['c6'].y) == (120, 220)
    assert (layout.nodes['c7'].x, layout.nodes['c7'].y) == (300, 220)
    assert layout.boundaries == {}


def test_unbounded_components_placed_last(settings):
    graph = ComponentGraph.build(ThreatModelGraph(
        components=[
            Component(id='loose', name='Loose'),
            Component(id='inner', name='Inner'),
        ],
        trustBoundaries=[TrustBoundary(id='TB-1', name='VPC', memberComponentIds=['inner'])],
    ))
    layout = LayoutEngine(settings).layout(graph)
    assert layout.nodes['inner'].x < layout.nodes['loose'].x


def test_column_count_from_settings(settings):
    narrow = settings.model_copy(update={'layout_columns': 2})
    graph = ComponentGraph.build(ThreatModelGraph(
        components=[Component(id=f'c{i}', name=f'C{i}') for i in range(3)]
    ))
    layout = LayoutEngine(narrow).layout(graph)
    assert layout.nodes['c2'].x == layout.nodes['c0'].x
    assert layout.nodes['c2'].y > layout.nodes['c0'].y


def test_empty_graph(settings):
    layout = LayoutEngine(settings).layout(ComponentGraph.build(ThreatModelGraph()))
    assert layout.nodes == {}
    assert (layout.width, layout.height) == (200, 200)
