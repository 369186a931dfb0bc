"""Attack tree tests: grouping, countermeasures and the Mermaid, DOT and text outputs."""

import pytest

from threatmap.attack_tree import AttackTreeGenerator
from threatmap.exceptions import RenderError
from threatmap.pipeline import ThreatModelPipeline
from threatmap.schemas import RiskLevel, ThreatStatus


@pytest.fixture
def pipeline(small_catalog, settings):
    return ThreatModelPipeline(catalog=small_catalog, settings=settings)


@pytest.fixture
def result(pipeline, sample_graph):
    return pipeline.generate(sample_graph)


@pytest.fixture
def generator(pipeline, result):
    return pipeline.attack_tree(result)


def test_one_goal_per_threatened_element(generator):
    tree = generator.generate_tree()

    assert tree.label == 'Compromise: Payments Service'
    assert [goal.label for goal in tree.children] == [
        'Compromise D-U01: Customer',
        'Compromise D-APGW01: Public API',
        'Compromise D-LMB01: Payment Handler',
        'Compromise D-DB01: Ledger DB',
        'Compromise D-DF03: Payment Handler -> Ledger DB',
    ]


def test_sub_goals_follow_stride_order(generator):
    api = generator.generate_tree('api')
    assert [(node.id, node.label) for node in api.children] == [
        ('goal_2_spoofing', 'Spoofing'),
        ('goal_2_repudiation', 'Repudiation'),
    ]
    spoofing = api.children[0].children[0]
    assert spoofing.threat_ref == 'D-APGW01'
    assert spoofing.risk_level == RiskLevel.CRITICAL


def test_every_threat_appears_once(generator, result):
    attacks = [node for node in generator.generate_tree().walk() if node.node_type == 'attack']
    assert len(attacks) == len(result.threats)
    assert len({node.id for node in attacks}) == len(attacks)


def test_controls_and_mitigations_become_countermeasures(generator):
    text = generator.to_text('db')
    assert text.splitlines() == [
        '[T] Compromise D-DB01: Ledger DB',
        '  [OR] Tampering',
        '    [A] Data tampering - Ledger DB (13.5)',
        '      [M] IAM write restrictions [IN PLACE]',
        '      [M] Integrity checks',
        '  [OR] Repudiation',
        '    [A] Missing audit trail - Ledger DB (9.0)',
        '      [M] Centralized audit logging',
        '      [M] Integrity checks',
    ]


def test_flow_threats_carry_attack_vector(generator):
    flow_goal = generator.generate_tree('f3')
    attack = flow_goal.children[0].children[0]
    assert flow_goal.children[0].label == 'Information Disclosure'
    assert attack.children[0].node_type == 'vector'
    assert attack.children[0].label == 'Network sniffing, man-in-the-middle'


def test_mitigated_threats_mark_their_branch(result):
    threats = [
        t.model_copy(update={'status': ThreatStatus.MITIGATED}) if t.targetId == 'db' else t
        for t in result.threats
    ]
    generator = AttackTreeGenerator(result.graph, threats)
    tree = generator.generate_tree()
    db = tree.children[3]

    assert db.mitigated
    assert all(node.mitigated for node in db.walk())
    assert not tree.mitigated
    assert '[T] Compromise D-DB01: Ledger DB [MITIGATED]' in generator.to_text()


def test_unknown_target(generator):
    with pytest.raises(RenderError, match='ghost'):
        generator.generate_tree('ghost')


class TestMermaid:
    def test_nodes_edges_and_styles(self, generator):
        lines = generator.to_mermaid().splitlines()

        assert lines[0] == 'graph LR'
        assert '    root(["Compromise: Payments Service"])' in lines
        assert '    root --> goal_2' in lines
        assert '    goal_2_spoofing{"OR: Spoofing"}' in lines
        assert '    threat_3["D-APGW01: Caller impersonation - Public API #124; 16.0 Critical"]' in lines
        assert '    threat_5 -.-> threat_5_existing' in lines
        assert '    threat_5_existing(["DONE: IAM write restrictions"])' in lines
        assert '    threat_5_cm_1(["TODO: Integrity checks"])' in lines
        assert '    style threat_3 fill:#8B0000,stroke:#5c0000,color:#fff,stroke-width:2px' in lines

    def test_labels_are_escaped(self, generator):
        text = generator.to_mermaid('f3')
        assert 'Payment Handler -#gt; Ledger DB' in text
        assert 'root' not in text


def test_dot_output(generator):
    source = generator.to_dot()
    assert source.startswith('// Attack Tree: Payments Service')
    assert 'digraph attack_tree' in source
    assert 'shape=invhouse' in source
    assert 'threat_5 -> threat_5_existing' in source
    assert 'mitigates' in source
