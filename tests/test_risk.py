"""RiskScorer tests: one scale for inline and staged report scoring."""

import pytest

from threatmap.exceptions import ScoringError
from threatmap.risk import RiskScorer
from threatmap.schemas import Criticality, ImpactLevel, Likelihood, RiskLevel


@pytest.fixture
def scorer():
    return RiskScorer()


class TestScore:
    def test_likelihood_times_impact(self, scorer):
        assert scorer.score('high', 'critical') == 16
        assert scorer.score(Likelihood.LOW, ImpactLevel.MEDIUM) == 4

    def test_critical_multiplier(self, scorer):
        assert scorer.score('medium', 'high', Criticality.CRITICAL) == 13.5
        assert scorer.score('medium', 'high', Criticality.HIGH) == 9

    def test_labels_are_case_and_separator_insensitive(self, scorer):
        assert scorer.score('Very High', 'Critical') == 20
        assert scorer.score('very-low', 'LOW') == 1

    def test_unknown_label_raises(self, scorer):
        with pytest.raises(ScoringError):
            scorer.score('extreme', 'high')
        with pytest.raises(ScoringError):
            scorer.score('high', 'catastrophic')


class TestLevel:
    @pytest.mark.parametrize('score, expected', [
        (20, RiskLevel.CRITICAL),
        (16, RiskLevel.CRITICAL),
        (15.9, RiskLevel.HIGH),
        (9, RiskLevel.HIGH),
        (8, RiskLevel.MEDIUM),
        (4, RiskLevel.MEDIUM),
        (3, RiskLevel.LOW),
        (0, RiskLevel.LOW),
    ])
    def test_thresholds(self, scorer, score, expected):
        assert scorer.level(score) == expected

    def test_level_is_monotonic_in_score(self, scorer):
        order = list(RiskLevel)
        levels = [order.index(scorer.level(s / 2)) for s in range(0, 61)]
        assert levels == sorted(levels)

    @pytest.mark.parametrize('criticality', list(Criticality))
    def test_score_never_drops_as_likelihood_or_impact_rises(self, scorer, criticality):
        def contextual_score(likelihood, impact):
            return scorer.score(scorer.escalate(likelihood, criticality), impact, criticality)

        for impact in ImpactLevel:
            scores = [contextual_score(likelihood, impact) for likelihood in Likelihood]
            assert scores == sorted(scores)
        for likelihood in Likelihood:
            scores = [contextual_score(likelihood, impact) for impact in ImpactLevel]
            assert scores == sorted(scores)

    def test_level_for(self, scorer):
        assert scorer.level_for('high', 'high') == RiskLevel.HIGH
        assert scorer.level_for('low', 'low') == RiskLevel.LOW


class TestEscalation:
    def test_critical_components_raise_low_likelihood_to_medium(self, scorer):
        assert scorer.escalate(Likelihood.LOW, Criticality.CRITICAL) == Likelihood.MEDIUM
        assert scorer.escalate(Likelihood.VERY_LOW, Criticality.CRITICAL) == Likelihood.MEDIUM

    def test_other_likelihoods_unchanged(self, scorer):
        assert scorer.escalate(Likelihood.HIGH, Criticality.CRITICAL) == Likelihood.HIGH
        assert scorer.escalate(Likelihood.LOW, Criticality.HIGH) == Likelihood.LOW

    def test_lower_stops_at_very_low(self, scorer):
        assert scorer.lower(Likelihood.MEDIUM) == Likelihood.LOW
        assert scorer.lower(Likelihood.LOW, steps=3) == Likelihood.VERY_LOW


class TestCIA:
    def test_per_key_form(self, scorer):
        cia = scorer.parse_cia('C:High, I:High, A:Medium')
        assert cia.confidentiality == ImpactLevel.HIGH
        assert cia.availability == ImpactLevel.MEDIUM
        assert scorer.max_impact('C:High, I:High, A:Medium') == ImpactLevel.HIGH

    def test_missing_dimensions_default_to_medium(self, scorer):
        cia = scorer.parse_cia('C:Critical')
        assert cia.integrity == ImpactLevel.MEDIUM
        assert cia.highest() == ImpactLevel.CRITICAL

    def test_grouped_form(self, scorer):
        cia = scorer.parse_cia('High (C,I)')
        assert cia.confidentiality == ImpactLevel.HIGH
        assert cia.integrity == ImpactLevel.HIGH
        assert cia.availability == ImpactLevel.LOW

    def test_format(self, scorer):
        assert scorer.parse_cia('c:low, i:critical, a:medium').format() == 'C:Low, I:Critical, A:Medium'

    def test_invalid_level_raises(self, scorer):
        with pytest.raises(ScoringError):
            scorer.parse_cia('C:Bogus')

    def test_bare_level_applies_to_every_dimension(self, scorer):
        cia = scorer.parse_cia('Critical')
        assert (cia.confidentiality, cia.integrity, cia.availability) == (ImpactLevel.CRITICAL,) * 3
        assert scorer.max_impact(' low ') == ImpactLevel.LOW

    @pytest.mark.parametrize('text', ['nonsense', 'X:High, Y:Low', ''])
    def test_unrecognised_text_raises(self, scorer, text):
        with pytest.raises(ScoringError):
            scorer.parse_cia(text)


class TestAssess:
    def test_no_controls_keeps_pre_control_level(self, scorer):
        result = scorer.assess(16, 'high')
        assert result.pre_control == RiskLevel.CRITICAL
        assert result.after_existing == RiskLevel.CRITICAL
        assert result.final == RiskLevel.CRITICAL

    def test_recommendation_only_lowers_final_stage(self, scorer):
        result = scorer.assess(16, 'high', None, 'Enable TLS')
        assert result.after_existing_score == 16
        assert result.final_score == 12
        assert result.final == RiskLevel.HIGH

    def test_each_stage_lowers_likelihood_one_step(self, scorer):
        result = scorer.assess(13.5, 'medium', 'IAM policies', 'Audit logging')
        assert result.after_existing_score == 9
        assert result.after_existing == RiskLevel.HIGH
        assert result.final_score == 4.5
        assert result.final == RiskLevel.MEDIUM

    def test_stages_never_increase(self, scorer):
        for likelihood in Likelihood:
            result = scorer.assess(10, likelihood, 'controls', 'more controls')
            assert result.pre_control_score >= result.after_existing_score >= result.final_score
