from __future__ import annotations

import pytest

from companion.domain.models import AssessmentQuestion, RiskTier
from companion.domain.questions import (
    ASSESSMENT_QUESTIONS,
    DEFAULT_SCORING_MODEL,
    EXTREME_THRESHOLD,
    INCREASED_THRESHOLD,
    RISK_TIERS,
    SEVERE_THRESHOLD,
    ScoringModel,
    get_scoring_model,
)
from companion.domain.services import build_result, calculate_score, classify_score
from companion.infrastructure.exceptions import ConfigurationError

EXPECTED_WEIGHTS = {
    "1": 1, "2": 1, "3": 2, "4": 1, "5": 1, "6": 3, "7": 3, "8": 3,
    "9": 1, "10": 1, "11": 2, "12": 2, "13": 3, "14": 2, "15": 2,
}


def answers_for(*question_ids: str) -> dict[str, bool]:
    return {qid: True for qid in question_ids}


def test_question_table_matches_weights():
    assert len(ASSESSMENT_QUESTIONS) == 15
    assert DEFAULT_SCORING_MODEL.weights == EXPECTED_WEIGHTS
    assert DEFAULT_SCORING_MODEL.question_ids == tuple(str(i) for i in range(1, 16))
    assert DEFAULT_SCORING_MODEL.max_score == 28


def test_thresholds():
    assert DEFAULT_SCORING_MODEL.thresholds == (
        INCREASED_THRESHOLD,
        SEVERE_THRESHOLD,
        EXTREME_THRESHOLD,
    )
    assert DEFAULT_SCORING_MODEL.thresholds == (8, 14, 18)


def test_score_sums_weights_of_yes_answers():
    assert calculate_score({}) == 0
    assert calculate_score(answers_for("3", "6")) == 5
    assert calculate_score({"6": True, "7": False, "8": True}) == 6
    assert calculate_score(answers_for(*EXPECTED_WEIGHTS)) == 28


def test_unknown_question_ids_contribute_nothing():
    assert calculate_score({"99": True, "foo": True}) == 0
    assert calculate_score({"99": True, "6": True}) == 3


@pytest.mark.parametrize(
    "score, level",
    [
        (0, "variable"),
        (7, "variable"),
        (8, "increased"),
        (13, "increased"),
        (14, "severe"),
        (17, "severe"),
        (18, "extreme"),
        (28, "extreme"),
    ],
)
def test_classification_boundaries(score, level):
    assert classify_score(score) == level


def test_build_result_uses_tier_text():
    result = build_result(15)
    tier = DEFAULT_SCORING_MODEL.tier("severe")

    assert result.risk_level == "severe"
    assert result.interpretation == tier.interpretation
    assert result.recommendations == list(tier.recommendations)
    assert result.recommendations  # every tier carries advice

    # the result owns its list; mutating it leaves the table alone
    result.recommendations.append("extra")
    assert "extra" not in DEFAULT_SCORING_MODEL.tier("severe").recommendations


def test_every_tier_has_interpretation_and_recommendations():
    for tier in RISK_TIERS:
        assert tier.interpretation
        assert len(tier.recommendations) > 0


def test_get_scoring_model():
    assert get_scoring_model("da-2024.1") is DEFAULT_SCORING_MODEL
    with pytest.raises(ConfigurationError):
        get_scoring_model("does-not-exist")


def _tier(level, bound):
    return RiskTier(level=level, lower_bound=bound, interpretation="", recommendations=(), color="#000")


class TestScoringModelValidation:
    questions = (
        AssessmentQuestion(id="a", text="A", weight=2),
        AssessmentQuestion(id="b", text="B", weight=3),
    )

    def test_valid_custom_model(self):
        model = ScoringModel(
            version="custom",
            questions=self.questions,
            tiers=(_tier("variable", 0), _tier("extreme", 5)),
        )
        assert model.max_score == 5
        assert model.tier_for(4).level == "variable"
        assert model.tier_for(5).level == "extreme"

    def test_duplicate_question_ids(self):
        with pytest.raises(ConfigurationError):
            ScoringModel(
                version="dup",
                questions=self.questions + (AssessmentQuestion(id="a", text="A2", weight=1),),
                tiers=(_tier("variable", 0),),
            )

    def test_negative_weight(self):
        with pytest.raises(ConfigurationError):
            ScoringModel(
                version="neg",
                questions=(AssessmentQuestion(id="a", text="A", weight=-1),),
                tiers=(_tier("variable", 0),),
            )

    def test_thresholds_must_ascend(self):
        with pytest.raises(ConfigurationError):
            ScoringModel(
                version="order",
                questions=self.questions,
                tiers=(_tier("variable", 0), _tier("severe", 4), _tier("increased", 2)),
            )

    def test_lowest_tier_starts_at_zero(self):
        with pytest.raises(ConfigurationError):
            ScoringModel(
                version="start",
                questions=self.questions,
                tiers=(_tier("variable", 1),),
            )

    def test_top_threshold_must_be_reachable(self):
        with pytest.raises(ConfigurationError):
            ScoringModel(
                version="unreachable",
                questions=self.questions,
                tiers=(_tier("variable", 0), _tier("extreme", 6)),
            )

    def test_unknown_tier_level(self):
        with pytest.raises(KeyError):
            DEFAULT_SCORING_MODEL.tier("catastrophic")
