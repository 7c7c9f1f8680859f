"""Tests for assessment scoring rules."""

import pytest
from engagement_engine.core.rules import (
    Dimension,
    Instrument,
    Question,
    RuleType,
    ScoringRule,
    evaluate,
    max_displacement,
    ranking_displacement,
    score_instrument,
)
from engagement_engine.errors import InvalidScoringRule


class TestDirectAndWeighted:
    """Tests for direct, weighted and percentage rules."""

    def test_direct_clamps_to_range(self):
        rule = ScoringRule(RuleType.DIRECT, max_points=10)
        assert evaluate(rule, 7) == 7
        assert evaluate(rule, 15) == 10
        assert evaluate(rule, -3) == 0

    def test_direct_rejects_non_numbers(self):
        rule = ScoringRule(RuleType.DIRECT, max_points=10)
        with pytest.raises(InvalidScoringRule):
            evaluate(rule, "7")
        with pytest.raises(InvalidScoringRule):
            evaluate(rule, True)

    def test_weighted_uses_selected_option(self):
        rule = ScoringRule(RuleType.WEIGHTED, max_points=10, weights=(0.2, 0.5, 1.0))
        assert evaluate(rule, 0) == pytest.approx(2.0)
        assert evaluate(rule, 2) == pytest.approx(10.0)

    def test_weighted_weights_need_not_sum_to_one(self):
        rule = ScoringRule(RuleType.WEIGHTED, max_points=4, weights=(1.0, 1.0, 0.5))
        assert evaluate(rule, 2) == pytest.approx(2.0)

    def test_weighted_index_out_of_range(self):
        rule = ScoringRule(RuleType.WEIGHTED, max_points=10, weights=(0.5, 1.0))
        with pytest.raises(InvalidScoringRule):
            evaluate(rule, 2)
        with pytest.raises(InvalidScoringRule):
            evaluate(rule, -1)

    def test_weighted_without_weights(self):
        with pytest.raises(InvalidScoringRule):
            evaluate(ScoringRule(RuleType.WEIGHTED, max_points=10), 0)

    def test_percentage_scales(self):
        rule = ScoringRule(RuleType.PERCENTAGE, max_points=20)
        assert evaluate(rule, 50) == pytest.approx(10.0)
        assert evaluate(rule, 100) == pytest.approx(20.0)
        assert evaluate(rule, 0) == 0

    def test_percentage_out_of_range(self):
        rule = ScoringRule(RuleType.PERCENTAGE, max_points=20)
        with pytest.raises(InvalidScoringRule):
            evaluate(rule, 101)
        with pytest.raises(InvalidScoringRule):
            evaluate(rule, -1)

    def test_negative_max_points(self):
        with pytest.raises(InvalidScoringRule):
            evaluate(ScoringRule(RuleType.DIRECT, max_points=-1), 1)


class TestRankingMatrix:
    """Tests for ranking displacement scoring."""

    def setup_method(self):
        self.rule = ScoringRule(RuleType.RANKING_MATRIX, max_points=10, optimal_order=("a", "b", "c", "d"))

    def test_optimal_order_scores_full(self):
        assert evaluate(self.rule, ["a", "b", "c", "d"]) == pytest.approx(10.0)

    def test_reversal_scores_zero(self):
        assert evaluate(self.rule, ["d", "c", "b", "a"]) == pytest.approx(0.0)

    def test_max_displacement_is_reversal(self):
        for n in range(1, 8):
            options = [str(i) for i in range(n)]
            assert ranking_displacement(list(reversed(options)), options) == max_displacement(n)

    def test_every_maximal_displacement_scores_zero(self):
        rule = ScoringRule(RuleType.RANKING_MATRIX, max_points=10, optimal_order=("a", "b", "c"))
        # D_max = 4 is reached by the rotation as well as the reversal
        assert evaluate(rule, ["b", "c", "a"]) == pytest.approx(0.0)
        assert evaluate(rule, ["c", "b", "a"]) == pytest.approx(0.0)
        assert evaluate(rule, ["a", "c", "b"]) == pytest.approx(5.0)
        assert evaluate(self.rule, ["c", "d", "a", "b"]) == pytest.approx(0.0)

    def test_single_option(self):
        rule = ScoringRule(RuleType.RANKING_MATRIX, max_points=5, optimal_order=("only",))
        assert evaluate(rule, ["only"]) == 5

    def test_one_swap_scores_between(self):
        swapped = evaluate(self.rule, ["b", "a", "c", "d"])
        assert 0 < swapped < 10
        # D = 2, D_max = 8
        assert swapped == pytest.approx(7.5)

    def test_moving_toward_optimal_never_decreases(self):
        far = evaluate(self.rule, ["c", "d", "a", "b"])
        nearer = evaluate(self.rule, ["a", "d", "c", "b"])
        assert nearer >= far

    def test_rejects_non_permutation(self):
        with pytest.raises(InvalidScoringRule):
            evaluate(self.rule, ["a", "b", "c"])
        with pytest.raises(InvalidScoringRule):
            evaluate(self.rule, ["a", "a", "c", "d"])
        with pytest.raises(InvalidScoringRule):
            evaluate(self.rule, "abcd")

    def test_from_dict_camel_case(self):
        rule = ScoringRule.from_dict({"type": "ranking_matrix", "maxPoints": 6, "optimalOrder": ["x", "y"]})
        assert rule.optimal_order == ("x", "y")
        assert evaluate(rule, ["x", "y"]) == 6

    def test_from_dict_unknown_type(self):
        with pytest.raises(InvalidScoringRule):
            ScoringRule.from_dict({"type": "vibes", "max_points": 5})


@pytest.fixture
def instrument():
    return Instrument(
        id="success-gap",
        dimensions=(Dimension("clarity", 0.6), Dimension("action", 0.4)),
        questions=(
            Question("q1", "clarity", ScoringRule(RuleType.PERCENTAGE, max_points=10)),
            Question("q2", "clarity", ScoringRule(RuleType.DIRECT, max_points=10)),
            Question("q3", "action", ScoringRule(RuleType.WEIGHTED, max_points=10, weights=(0.0, 0.5, 1.0))),
        ),
    )


class TestInstrumentScoring:
    """Tests for dimension and instrument scores."""

    def test_score_instrument(self, instrument):
        result = score_instrument(instrument, {"q1": 100, "q2": 5, "q3": 1})
        assert result.dimension_scores["clarity"] == pytest.approx(75.0)
        assert result.dimension_scores["action"] == pytest.approx(50.0)
        assert result.score == pytest.approx(65.0)
        assert result.strongest_dimension == "clarity"
        assert result.weakest_dimension == "action"

    def test_unanswered_questions_are_skipped(self, instrument):
        result = score_instrument(instrument, {"q1": 100})
        assert result.dimension_scores["clarity"] == pytest.approx(100.0)
        assert result.dimension_scores["action"] == 0
        assert result.score == pytest.approx(60.0)

    def test_unknown_question_rejected(self, instrument):
        with pytest.raises(InvalidScoringRule):
            score_instrument(instrument, {"q9": 1})

    def test_weights_must_sum_to_one(self):
        bad = Instrument(
            id="bad",
            dimensions=(Dimension("a", 0.5), Dimension("b", 0.4)),
            questions=(),
        )
        with pytest.raises(InvalidScoringRule):
            score_instrument(bad, {})

    def test_from_dict(self):
        instrument = Instrument.from_dict({
            "id": "vision-void",
            "dimensions": [{"id": "vision", "weight": 1.0}],
            "questions": [
                {"id": "v1", "dimension": "vision", "scoring": {"type": "direct", "max_points": 4}},
            ],
        })
        assert score_instrument(instrument, {"v1": 2}).score == pytest.approx(50.0)
