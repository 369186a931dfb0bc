"""DREAD scoring tests."""

import pytest

from threatmap.config import Settings
from threatmap.dread import DreadCalculator
from threatmap.exceptions import ScoringError
from threatmap.graph import ComponentGraph
from threatmap.pipeline import ThreatModelPipeline
from threatmap.schemas import DreadFactors, DreadLevel, StrideCategory


@pytest.fixture
def calculator():
    return DreadCalculator()


@pytest.fixture
def threats(small_catalog, settings, sample_graph):
    return ThreatModelPipeline(catalog=small_catalog, settings=settings).generate(sample_graph).threats


def find(threats, target_id, template_id=None):
    return next(t for t in threats if t.targetId == target_id and t.templateId == template_id)


def as_tuple(factors):
    return (factors.damage, factors.reproducibility, factors.exploitability,
            factors.affectedUsers, factors.discoverability)


class TestScore:
    def test_score_is_mean_of_factors(self, calculator):
        factors = DreadFactors(damage=9, reproducibility=8, exploitability=7, affectedUsers=6, discoverability=4)
        assert calculator.score(factors) == 6.8

    @pytest.mark.parametrize('score, level', [
        (10.0, DreadLevel.CRITICAL),
        (9.0, DreadLevel.CRITICAL),
        (8.9, DreadLevel.HIGH),
        (7.0, DreadLevel.HIGH),
        (5.0, DreadLevel.MEDIUM),
        (3.0, DreadLevel.LOW),
        (2.9, DreadLevel.INFORMATIONAL),
        (0.0, DreadLevel.INFORMATIONAL),
    ])
    def test_levels(self, calculator, score, level):
        assert calculator.level(score) == level

    def test_manual_factors_out_of_range(self, calculator):
        with pytest.raises(ScoringError, match='between 0 and 10'):
            calculator.factors(damage=11)

    def test_manual_factors_override_inference(self, calculator, threats):
        factors = calculator.factors(damage=10, reproducibility=10, exploitability=10,
                                     affectedUsers=10, discoverability=10)
        assessment = calculator.assess(find(threats, 'user', 'ANY-REPUD'), factors=factors)
        assert assessment.score == 10.0
        assert assessment.level == DreadLevel.CRITICAL


class TestInference:
    @pytest.mark.parametrize('target_id, template_id, target_type, expected, score', [
        ('user', 'ANY-REPUD', 'user', (6, 5, 6, 5, 5), 5.4),
        ('api', 'ANY-REPUD', 'api_gateway', (6, 5, 6, 5, 8), 6.0),
        ('api', 'API-SPOOF', 'api_gateway', (8, 7, 8, 5, 8), 7.2),
        ('db', 'DB-TAMP', 'database', (8, 7, 6, 5, 4), 6.0),
        ('db', 'ANY-REPUD', 'database', (6, 5, 6, 5, 4), 5.2),
        ('f3', None, 'database', (8, 7, 8, 5, 4), 6.4),
    ])
    def test_factors_from_analysis(self, calculator, threats, target_id, template_id, target_type, expected, score):
        assessment = calculator.assess(find(threats, target_id, template_id), target_type)
        assert as_tuple(assessment.factors) == expected
        assert assessment.score == score

    def test_injection_keywords_and_cwe(self, calculator, threats):
        threat = find(threats, 'db', 'DB-TAMP').model_copy(
            update={'title': 'SQL injection in search', 'cweIds': ['CWE-89']}
        )
        assessment = calculator.assess(threat, 'database')
        assert as_tuple(assessment.factors) == (9, 7, 8, 5, 7)
        assert assessment.level == DreadLevel.HIGH

    def test_denial_of_service_reaches_most_users(self, calculator, threats):
        threat = find(threats, 'user', 'ANY-REPUD').model_copy(
            update={'strideCategory': StrideCategory.DENIAL_OF_SERVICE}
        )
        assert as_tuple(calculator.infer_factors(threat, 'user')) == (6, 5, 6, 9, 5)

    def test_dos_matched_as_a_word(self, calculator, threats):
        threat = find(threats, 'user', 'ANY-REPUD')
        assert calculator.infer_factors(threat.model_copy(update={'title': 'DoS via retries'})).affectedUsers == 9
        assert calculator.infer_factors(threat.model_copy(update={'title': 'Windows host'})).affectedUsers == 5

    def test_missing_authentication_cwe(self, calculator, threats):
        threat = find(threats, 'user', 'ANY-REPUD').model_copy(update={'cweIds': ['cwe-306']})
        assert as_tuple(calculator.infer_factors(threat, 'user')) == (7, 8, 6, 5, 5)


class TestExplanation:
    def test_justification_per_factor(self, calculator, threats):
        assessment = calculator.assess(find(threats, 'db', 'DB-TAMP'), 'database')
        assert set(assessment.justification) == set(DreadCalculator.FACTORS)
        assert assessment.justification['damage'] == 'Significant data breach, major financial loss, reputation damage'
        assert assessment.justification['discoverability'] == 'Needs detailed analysis to find'

    def test_recommendation(self, calculator, threats):
        assessment = calculator.assess(find(threats, 'db', 'DB-TAMP'), 'database')
        assert assessment.recommendation == (
            'Schedule remediation in the next sprint. Add defense in depth to contain the damage.'
        )

    def test_low_scores_are_monitored(self, calculator):
        factors = DreadFactors(damage=1, reproducibility=1, exploitability=1, affectedUsers=1, discoverability=1)
        assert calculator.recommend(factors, DreadLevel.INFORMATIONAL) == 'Monitor and address in regular maintenance.'


class TestPipeline:
    def test_off_by_default(self, threats):
        assert all(t.dread is None for t in threats)

    def test_enabled_by_flag(self, small_catalog, settings, sample_graph):
        threats = ThreatModelPipeline(catalog=small_catalog, settings=settings, dread=True).generate(sample_graph).threats
        assert [t.dread.score for t in threats] == [5.4, 6.0, 7.2, 5.4, 6.0, 5.2, 6.4]

    def test_enabled_by_settings(self, small_catalog, sample_graph):
        settings = Settings(_env_file=None, log_level='WARNING', dread_scoring=True)
        threats = ThreatModelPipeline(catalog=small_catalog, settings=settings).generate(sample_graph).threats
        assert all(t.dread is not None for t in threats)

    def test_summary(self, calculator, threats, sample_graph):
        rated = calculator.annotate(threats, ComponentGraph.build(sample_graph))
        summary = calculator.summarize(rated, top=2)

        assert (summary.average, summary.highest, summary.lowest) == (5.9, 7.2, 5.2)
        assert summary.distribution == {'critical': 0, 'high': 1, 'medium': 6, 'low': 0, 'informational': 0}
        assert [t.templateId for t in summary.top] == ['API-SPOOF', None]

    def test_summary_of_unrated_threats(self, calculator, threats):
        summary = calculator.summarize(threats)
        assert summary.average == 0.0
        assert summary.top == []
