"""Scoring rules for assessment answers.

Every rule converts one answered question into points. The four rule types
mirror what assessment content can declare:

- direct: the answer value itself, clamped to [0, max_points]
- weighted: the selected option's weight times max_points
- percentage: a 0-100 answer scaled onto max_points
- ranking_matrix: a permutation scored by positional displacement from
  the optimal order

Evaluation is pure. Anything malformed raises InvalidScoringRule rather than
being coerced into a number.
"""

import math
import numbers
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import InvalidScoringRule

WEIGHT_TOLERANCE = 1e-6


class RuleType(Enum):
    """Supported scoring rule types."""

    DIRECT = "direct"
    WEIGHTED = "weighted"
    RANKING_MATRIX = "ranking_matrix"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class ScoringRule:
    """How one question converts an answer into points."""

    type: RuleType
    max_points: float
    weights: Tuple[float, ...] = ()
    optimal_order: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoringRule":
        """Build a rule from content data (camelCase or snake_case keys)."""
        try:
            rule_type = RuleType(data["type"])
        except (KeyError, ValueError):
            raise InvalidScoringRule(f"Unknown scoring rule type: {data.get('type')!r}")
        max_points = data.get("max_points", data.get("maxPoints"))
        if max_points is None:
            raise InvalidScoringRule("Scoring rule is missing max_points")
        return cls(
            type=rule_type,
            max_points=max_points,
            weights=tuple(data.get("weights") or ()),
            optimal_order=tuple(data.get("optimal_order") or data.get("optimalOrder") or ()),
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def _validate(rule: ScoringRule):
    if not isinstance(rule.type, RuleType):
        raise InvalidScoringRule(f"Unknown scoring rule type: {rule.type!r}")
    if not _is_number(rule.max_points) or rule.max_points < 0:
        raise InvalidScoringRule(f"max_points must be a non-negative number, got {rule.max_points!r}")
    if rule.type == RuleType.WEIGHTED:
        if not rule.weights:
            raise InvalidScoringRule("Weighted rule requires weights")
        if not all(_is_number(w) for w in rule.weights):
            raise InvalidScoringRule("Weighted rule weights must be numbers")
    if rule.type == RuleType.RANKING_MATRIX:
        if not rule.optimal_order:
            raise InvalidScoringRule("Ranking rule requires optimal_order")
        if len(set(rule.optimal_order)) != len(rule.optimal_order):
            raise InvalidScoringRule("Ranking rule optimal_order contains duplicates")


def max_displacement(option_count: int) -> int:
    """Largest total displacement of a permutation of n items.

    The reversal reaches it, but so do other orders once n > 2.
    """
    return (option_count * option_count) // 2


def ranking_displacement(submitted: Sequence[str], optimal: Sequence[str]) -> int:
    """Sum of |submitted position - optimal position| over all options."""
    optimal_index = {option: i for i, option in enumerate(optimal)}
    return sum(abs(i - optimal_index[option]) for i, option in enumerate(submitted))


def _score_ranking(rule: ScoringRule, response: Any) -> float:
    if isinstance(response, (str, bytes)) or not isinstance(response, Sequence):
        raise InvalidScoringRule("Ranking response must be a sequence of option ids")
    submitted = list(response)
    if len(submitted) != len(rule.optimal_order) or set(submitted) != set(rule.optimal_order):
        raise InvalidScoringRule("Ranking response must be a full permutation of the options")
    worst = max_displacement(len(submitted))
    if worst == 0:
        return float(rule.max_points)
    displacement = ranking_displacement(submitted, rule.optimal_order)
    return (1 - displacement / worst) * rule.max_points


def evaluate(rule: ScoringRule, response: Any) -> float:
    """Convert one answer into points under a scoring rule."""
    _validate(rule)

    if rule.type == RuleType.DIRECT:
        if not _is_number(response):
            raise InvalidScoringRule(f"Direct rule expects a number, got {response!r}")
        return float(min(max(response, 0), rule.max_points))

    if rule.type == RuleType.WEIGHTED:
        if not isinstance(response, int) or isinstance(response, bool):
            raise InvalidScoringRule(f"Weighted rule expects an option index, got {response!r}")
        if not 0 <= response < len(rule.weights):
            raise InvalidScoringRule(
                f"Option index {response} out of range for {len(rule.weights)} weights"
            )
        return float(rule.weights[response] * rule.max_points)

    if rule.type == RuleType.PERCENTAGE:
        if not _is_number(response) or not 0 <= response <= 100:
            raise InvalidScoringRule(f"Percentage rule expects a value in [0, 100], got {response!r}")
        return response / 100 * rule.max_points

    if rule.type == RuleType.RANKING_MATRIX:
        return _score_ranking(rule, response)

    raise InvalidScoringRule(f"Unknown scoring rule type: {rule.type!r}")


# === Instrument level scoring ===

@dataclass(frozen=True)
class Question:
    """An assessment question reduced to its scoring concerns."""

    id: str
    dimension: str
    rule: ScoringRule


@dataclass(frozen=True)
class Dimension:
    """A weighted category of questions."""

    id: str
    weight: float


@dataclass(frozen=True)
class Instrument:
    """An assessment: dimensions whose weights sum to 1.0, and their questions."""

    id: str
    dimensions: Tuple[Dimension, ...]
    questions: Tuple[Question, ...]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Instrument":
        """Build an instrument from content data.

        Expected shape: {"id", "dimensions": [{"id", "weight"}],
        "questions": [{"id", "dimension", "scoring": {rule}}]}
        """
        return cls(
            id=data["id"],
            dimensions=tuple(Dimension(id=d["id"], weight=d["weight"]) for d in data.get("dimensions", [])),
            questions=tuple(
                Question(
                    id=q["id"],
                    dimension=q.get("dimension", q.get("category")),
                    rule=ScoringRule.from_dict(q.get("scoring", q.get("rule", {}))),
                )
                for q in data.get("questions", [])
            ),
        )

    def validate(self):
        total = sum(d.weight for d in self.dimensions)
        if not self.dimensions or abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise InvalidScoringRule(
                f"Dimension weights for {self.id} must sum to 1.0, got {total}"
            )
        known = {d.id for d in self.dimensions}
        for question in self.questions:
            if question.dimension not in known:
                raise InvalidScoringRule(
                    f"Question {question.id} references unknown dimension {question.dimension}"
                )


@dataclass
class InstrumentScore:
    """Result of scoring a full set of responses."""

    instrument_id: str
    question_points: Dict[str, float] = field(default_factory=dict)
    dimension_scores: Dict[str, float] = field(default_factory=dict)
    score: float = 0.0

    @property
    def strongest_dimension(self) -> Optional[str]:
        if not self.dimension_scores:
            return None
        return max(self.dimension_scores, key=self.dimension_scores.get)

    @property
    def weakest_dimension(self) -> Optional[str]:
        if not self.dimension_scores:
            return None
        return min(self.dimension_scores, key=self.dimension_scores.get)


def dimension_score(questions: List[Question], question_points: Mapping[str, float]) -> float:
    """Mean percentage (0-100) of max points earned across a dimension's questions."""
    percentages = []
    for question in questions:
        if question.id not in question_points:
            continue
        if question.rule.max_points == 0:
            percentages.append(0.0)
        else:
            percentages.append(question_points[question.id] / question.rule.max_points * 100)
    if not percentages:
        return 0.0
    return sum(percentages) / len(percentages)


def score_instrument(instrument: Instrument, responses: Mapping[str, Any]) -> InstrumentScore:
    """Score every answered question and roll up to a 0-100 instrument score.

    Unanswered questions are skipped; answers to unknown questions are rejected.
    """
    instrument.validate()
    by_id = {q.id: q for q in instrument.questions}
    unknown = set(responses) - set(by_id)
    if unknown:
        raise InvalidScoringRule(f"Responses reference unknown questions: {', '.join(sorted(unknown))}")

    result = InstrumentScore(instrument_id=instrument.id)
    for question_id, response in responses.items():
        result.question_points[question_id] = evaluate(by_id[question_id].rule, response)

    for dimension in instrument.dimensions:
        questions = [q for q in instrument.questions if q.dimension == dimension.id]
        score = dimension_score(questions, result.question_points)
        result.dimension_scores[dimension.id] = score
        result.score += score * dimension.weight

    result.score = round(result.score, 2)
    return result
