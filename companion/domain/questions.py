"""
Fixed tables for the Danger Assessment questionnaire.

The question weights and the tier thresholds are only meaningful together:
`ScoringModel` binds them under one version string so that changing either
one produces a new, separately identifiable model.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..infrastructure.exceptions import ConfigurationError
from .models import AssessmentQuestion, RiskLevel, RiskTier

ASSESSMENT_QUESTIONS: tuple[AssessmentQuestion, ...] = (
    AssessmentQuestion(
        id="1",
        text="Has the physical violence increased in frequency over the past year?",
        weight=1,
        help_text="Consider how often incidents occur compared to previous years",
    ),
    AssessmentQuestion(
        id="2",
        text="Has the physical violence increased in severity over the past year?",
        weight=1,
        help_text="Think about whether incidents have become more intense or dangerous",
    ),
    AssessmentQuestion(
        id="3",
        text="Does your partner own a gun?",
        weight=2,
        help_text="Consider any firearms they have access to",
    ),
    AssessmentQuestion(
        id="4",
        text="Have you left them after living together during the past year?",
        weight=1,
        help_text="Include any separations, even temporary ones",
    ),
    AssessmentQuestion(
        id="5",
        text="Is your partner unemployed?",
        weight=1,
        help_text="Consider their current employment status",
    ),
    AssessmentQuestion(
        id="6",
        text="Has your partner ever used a weapon against you or threatened you with a weapon?",
        weight=3,
        help_text="Include any type of weapon or object used as a weapon",
    ),
    AssessmentQuestion(
        id="7",
        text="Has your partner ever threatened to kill you?",
        weight=3,
        help_text="Include both direct and indirect threats",
    ),
    AssessmentQuestion(
        id="8",
        text="Has your partner ever tried to choke/strangle you?",
        weight=3,
        help_text="Include any attempts to restrict breathing",
    ),
    AssessmentQuestion(
        id="9",
        text="Does your partner use drugs?",
        weight=1,
        help_text="Consider illegal drugs or misuse of prescription medications",
    ),
    AssessmentQuestion(
        id="10",
        text="Does your partner have an alcohol problem?",
        weight=1,
        help_text="Consider if alcohol affects their behavior or daily life",
    ),
    AssessmentQuestion(
        id="11",
        text="Does your partner control most or all of your daily activities?",
        weight=2,
        help_text="Think about decisions regarding friends, family, money, or going places",
    ),
    AssessmentQuestion(
        id="12",
        text="Is your partner violently and constantly jealous of you?",
        weight=2,
        help_text="Consider possessive behaviors and accusations",
    ),
    AssessmentQuestion(
        id="13",
        text="Has your partner ever beaten you while you were pregnant?",
        weight=3,
        help_text="Include any physical violence during pregnancy",
    ),
    AssessmentQuestion(
        id="14",
        text="Has your partner ever threatened or tried to commit suicide?",
        weight=2,
        help_text="Include both threats and attempts",
    ),
    AssessmentQuestion(
        id="15",
        text="Does your partner threaten to harm your children?",
        weight=2,
        help_text="Include any threats of physical or emotional harm",
    ),
)

# Lower bounds of the increased, severe and extreme tiers
INCREASED_THRESHOLD = 8
SEVERE_THRESHOLD = 14
EXTREME_THRESHOLD = 18

RISK_LEVEL_COLORS: dict[RiskLevel, str] = {
    "variable": "#4CAF50",
    "increased": "#FF9800",
    "severe": "#F44336",
    "extreme": "#D32F2F",
}

RISK_TIERS: tuple[RiskTier, ...] = (
    RiskTier(
        level="variable",
        lower_bound=0,
        interpretation=(
            "Your current risk level is variable. While some risk factors are present, "
            "they may not indicate immediate danger."
        ),
        recommendations=(
            "Consider creating a safety plan",
            "Save emergency contact numbers",
            "Stay connected with trusted friends or family",
            "Document any concerning incidents",
        ),
        color=RISK_LEVEL_COLORS["variable"],
    ),
    RiskTier(
        level="increased",
        lower_bound=INCREASED_THRESHOLD,
        interpretation=(
            "Your assessment indicates an increased risk level. This suggests the presence "
            "of several concerning factors."
        ),
        recommendations=(
            "Create or review your safety plan",
            "Share your situation with trusted people",
            "Save emergency contacts in your phone",
            "Consider reaching out to support services",
            "Keep important documents in a safe place",
        ),
        color=RISK_LEVEL_COLORS["increased"],
    ),
    RiskTier(
        level="severe",
        lower_bound=SEVERE_THRESHOLD,
        interpretation=(
            "Your assessment indicates a severe risk level. Multiple serious risk factors "
            "are present."
        ),
        recommendations=(
            "Prioritize your safety plan",
            "Connect with domestic violence support services",
            "Consider legal protection options",
            "Ensure you have a safe place to go if needed",
            "Keep emergency numbers readily available",
            "Share your safety plan with trusted people",
        ),
        color=RISK_LEVEL_COLORS["severe"],
    ),
    RiskTier(
        level="extreme",
        lower_bound=EXTREME_THRESHOLD,
        interpretation=(
            "Your assessment indicates an extreme risk level. Immediate safety planning is "
            "strongly recommended."
        ),
        recommendations=(
            "Contact domestic violence support services immediately",
            "Consider seeking legal protection",
            "Review and implement your safety plan",
            "Connect with trusted support people",
            "Keep emergency numbers accessible",
            "Consider temporary alternative accommodation",
            "Document all incidents",
        ),
        color=RISK_LEVEL_COLORS["extreme"],
    ),
)

# Least to most severe; index is severity - 1
SEVERITY_COLORS: tuple[str, ...] = ("#4CAF50", "#8BC34A", "#FFEB3B", "#FF9800", "#F44336")

SAFETY_RESOURCES: dict[str, dict] = {
    "emergency": {
        "title": "Emergency Services",
        "contacts": [
            {"name": "Emergency", "number": "000"},
            {"name": "Police", "number": "131 444"},
        ],
    },
    "hotlines": {
        "title": "24/7 Support Hotlines",
        "contacts": [
            {"name": "1800RESPECT", "number": "1800 737 732"},
            {"name": "Lifeline", "number": "13 11 14"},
            {"name": "DV Connect", "number": "1800 811 811"},
        ],
    },
    "support": {
        "title": "Support Services",
        "contacts": [
            {"name": "Legal Aid", "number": "1300 651 188"},
            {"name": "Safe Steps", "number": "1800 015 188"},
            {"name": "Relationships Australia", "number": "1300 364 277"},
        ],
    },
}


def severity_color(severity: object) -> str:
    """Display color for an incident severity; out-of-table values get the mildest color."""
    if isinstance(severity, bool) or not isinstance(severity, int):
        return SEVERITY_COLORS[0]
    if 1 <= severity <= len(SEVERITY_COLORS):
        return SEVERITY_COLORS[severity - 1]
    return SEVERITY_COLORS[0]


def risk_level_color(level: str) -> str:
    return RISK_LEVEL_COLORS.get(level, RISK_LEVEL_COLORS["variable"])  # type: ignore[call-overload]


@dataclass(frozen=True, slots=True)
class ScoringModel:
    """
    A question table and its tier thresholds, validated together.

    Tiers must be ordered by strictly ascending `lower_bound`, the first tier
    must start at 0 and the last tier must be reachable, i.e. its lower bound
    cannot exceed the sum of all question weights.
    """

    version: str
    questions: tuple[AssessmentQuestion, ...]
    tiers: tuple[RiskTier, ...]

    def __post_init__(self) -> None:
        ids = [q.id for q in self.questions]
        if len(set(ids)) != len(ids):
            raise ConfigurationError(
                f"Scoring model {self.version} has duplicate question ids",
                config_key="questions",
            )
        negative = [q.id for q in self.questions if q.weight < 0]
        if negative:
            raise ConfigurationError(
                f"Scoring model {self.version} has negative weights for {negative}",
                config_key="questions",
            )
        if not self.tiers:
            raise ConfigurationError(
                f"Scoring model {self.version} has no tiers", config_key="tiers"
            )
        bounds = [t.lower_bound for t in self.tiers]
        if bounds[0] != 0:
            raise ConfigurationError(
                f"Scoring model {self.version}: lowest tier must start at 0",
                config_key="tiers",
            )
        if any(b <= a for a, b in zip(bounds, bounds[1:])):
            raise ConfigurationError(
                f"Scoring model {self.version}: thresholds must be strictly ascending",
                config_key="tiers",
                details={"thresholds": bounds},
            )
        if bounds[-1] > self.max_score:
            raise ConfigurationError(
                f"Scoring model {self.version}: top tier threshold {bounds[-1]} exceeds "
                f"maximum score {self.max_score}",
                config_key="tiers",
                details={"thresholds": bounds, "max_score": self.max_score},
            )

    @property
    def max_score(self) -> int:
        return sum(q.weight for q in self.questions)

    @property
    def weights(self) -> dict[str, int]:
        return {q.id: q.weight for q in self.questions}

    @property
    def question_ids(self) -> tuple[str, ...]:
        return tuple(q.id for q in self.questions)

    @property
    def thresholds(self) -> tuple[int, ...]:
        """Lower bounds of every tier above the lowest."""
        return tuple(t.lower_bound for t in self.tiers[1:])

    def tier(self, level: str) -> RiskTier:
        for t in self.tiers:
            if t.level == level:
                return t
        raise KeyError(level)

    def tier_for(self, score: int) -> RiskTier:
        selected = self.tiers[0]
        for t in self.tiers:
            if score >= t.lower_bound:
                selected = t
            else:
                break
        return selected


DEFAULT_SCORING_MODEL = ScoringModel(
    version="da-2024.1",
    questions=ASSESSMENT_QUESTIONS,
    tiers=RISK_TIERS,
)

SCORING_MODELS: dict[str, ScoringModel] = {DEFAULT_SCORING_MODEL.version: DEFAULT_SCORING_MODEL}


def get_scoring_model(version: str) -> ScoringModel:
    try:
        return SCORING_MODELS[version]
    except KeyError:
        raise ConfigurationError(
            f"Unknown scoring model version: {version}",
            config_key="scoring_model_version",
            details={"available": sorted(SCORING_MODELS)},
        ) from None
