"""Weighted totals for evaluation score sets."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from ..errors import ErrorCode, ValidationError

FULL_WEIGHT = 100


class WeightedCriterion(Protocol):
    id: int
    weight: int


@dataclass(frozen=True)
class ScoreEntry:
    """A raw score submitted for one criterion."""

    criterion_id: int
    score: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScoreEntry":
        """Parse ``{"criterionId": ..., "score": ...}`` (snake_case also accepted).

        Raises
        ------
        ValidationError
            If the criterion id is missing or the score is not a finite number.
        """
        criterion_id = data.get("criterion_id", data.get("criterionId"))
        score = data.get("score")
        if criterion_id is None or isinstance(criterion_id, bool):
            raise ValidationError(
                ErrorCode.INVALID_EVALUATION,
                "Each score must reference a criterion",
                {"entry": dict(data)},
            )
        try:
            criterion_id = int(criterion_id)
        except (TypeError, ValueError):
            raise ValidationError(
                ErrorCode.INVALID_EVALUATION,
                f"Invalid criterion id {criterion_id!r}",
                {"entry": dict(data)},
            ) from None
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValidationError(
                ErrorCode.INVALID_EVALUATION,
                f"Score for criterion {criterion_id} must be a number",
                {"criterion_id": criterion_id},
            )
        if not math.isfinite(score):
            raise ValidationError(
                ErrorCode.INVALID_EVALUATION,
                f"Score for criterion {criterion_id} must be finite",
                {"criterion_id": criterion_id},
            )
        return cls(criterion_id=criterion_id, score=float(score))


@dataclass(frozen=True)
class NormalizedTotal:
    """Result of :func:`compute_total`.

    Attributes
    ----------
    total : float
        Total on a 100-point scale.
    weighted_sum : float
        Sum of ``score * weight / 100`` over matched entries, before rescaling.
    total_weight : int
        Sum of the weights of matched criteria.
    matched : tuple[int, ...]
        Criterion ids that contributed, in submission order.
    ignored : tuple[int, ...]
        Submitted criterion ids with no matching criterion.
    """

    total: float
    weighted_sum: float
    total_weight: int
    matched: tuple[int, ...]
    ignored: tuple[int, ...]

    @property
    def renormalized(self) -> bool:
        return self.total_weight not in (0, FULL_WEIGHT)


def compute_total(
    criteria: Iterable[WeightedCriterion] | Mapping[int, int],
    scores: Sequence[ScoreEntry],
) -> NormalizedTotal:
    """Combine ``scores`` into a single total using the criteria weights.

    Entries whose criterion is unknown are skipped. When the matched weights
    add up to neither 0 nor 100, the weighted sum is rescaled so the result is
    expressed on a 100-point scale.

    Parameters
    ----------
    criteria : Iterable[WeightedCriterion] | Mapping[int, int]
        Current criteria (objects with ``id`` and ``weight``) or an
        ``{id: weight}`` mapping.
    scores : Sequence[ScoreEntry]
        Submitted raw scores.

    Returns
    -------
    NormalizedTotal
        The total together with the intermediate sums.
    """

    if isinstance(criteria, Mapping):
        weights = {int(k): int(v) for k, v in criteria.items()}
    else:
        weights = {int(c.id): int(c.weight) for c in criteria}

    weighted_sum = 0.0
    total_weight = 0
    matched: list[int] = []
    ignored: list[int] = []
    for entry in scores:
        weight: Optional[int] = weights.get(entry.criterion_id)
        if weight is None:
            ignored.append(entry.criterion_id)
            continue
        weighted_sum += entry.score * weight / FULL_WEIGHT
        total_weight += weight
        matched.append(entry.criterion_id)

    if total_weight in (0, FULL_WEIGHT):
        total = weighted_sum
    else:
        total = weighted_sum * FULL_WEIGHT / total_weight

    return NormalizedTotal(
        total=total,
        weighted_sum=weighted_sum,
        total_weight=total_weight,
        matched=tuple(matched),
        ignored=tuple(ignored),
    )
