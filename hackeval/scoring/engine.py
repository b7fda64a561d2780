"""Engine that persists evaluations with replace-on-resubmit semantics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.orm import Session

from ..errors import ErrorCode, ValidationError
from ..models import Evaluation, EvaluationCriterion, EvaluationScore
from .normalizer import NormalizedTotal, ScoreEntry, compute_total

logger = logging.getLogger(__name__)


@dataclass
class EvaluationOutcome:
    """Value object describing a write produced by the engine.

    Attributes
    ----------
    evaluation : Evaluation
        The evaluation row stored in the database.
    normalized : NormalizedTotal
        Breakdown of the computed total.
    created : bool
        ``True`` when the row was inserted, ``False`` when an existing row was
        replaced.
    """

    evaluation: Evaluation
    normalized: NormalizedTotal
    created: bool


class EvaluationEngine:
    """Scores submissions and upserts the resulting evaluation rows."""

    def __init__(self, session: Session) -> None:
        """Create an evaluation engine bound to a SQLAlchemy session.

        The caller owns the transaction; the engine only flushes.
        """

        self._session = session

    def submit(
        self,
        *,
        submission_id: int,
        evaluator_id: int,
        scores: Sequence[ScoreEntry],
        comments: Optional[str] = None,
    ) -> EvaluationOutcome:
        """Record ``scores`` for the (submission, evaluator) pair.

        Notes
        -----
        The steps are:

        1. Compute the normalized total against the current criteria.
        2. Look up the existing evaluation for the pair.
        3. If present, delete all of its score rows and update total and
           comments in place; otherwise insert a new evaluation.
        4. Insert one score row per submitted entry whose criterion exists.

        Nothing is committed here, so a failure in any step leaves the
        caller's transaction free to roll the whole sequence back.

        Raises
        ------
        ValidationError
            If ``scores`` is empty or names the same criterion twice.
        """

        self.validate_entries(scores)

        criteria = EvaluationCriterion.list_all(self._session)
        normalized = compute_total(criteria, scores)
        if normalized.ignored:
            logger.warning(
                "Ignoring scores for unknown criteria %s (submission=%s, evaluator=%s)",
                list(normalized.ignored),
                submission_id,
                evaluator_id,
            )

        evaluation = Evaluation.get_by_submission_and_evaluator(
            self._session, submission_id, evaluator_id, lock=True
        )
        created = evaluation is None
        if evaluation is None:
            evaluation = Evaluation(
                submission_id=submission_id,
                evaluator_id=evaluator_id,
                total_score=normalized.total,
                comments=comments,
            )
            self._session.add(evaluation)
            # Flush now so a concurrent first insert for the same pair fails
            # here, before any score rows are written.
            self._session.flush()
        else:
            self._clear_scores(evaluation)
            evaluation.total_score = normalized.total
            evaluation.comments = comments

        matched = set(normalized.matched)
        self._session.add_all(
            EvaluationScore(
                evaluation_id=evaluation.id,
                criterion_id=entry.criterion_id,
                score=entry.score,
            )
            for entry in scores
            if entry.criterion_id in matched
        )
        self._session.flush()
        # Reload so ``evaluation.scores`` reflects the rows just written.
        self._session.expire(evaluation, ["scores"])

        logger.debug(
            "%s evaluation %s with %d scores, total=%.4f",
            "Created" if created else "Replaced",
            evaluation.id,
            len(matched),
            normalized.total,
        )
        return EvaluationOutcome(
            evaluation=evaluation, normalized=normalized, created=created
        )

    def _clear_scores(self, evaluation: Evaluation) -> None:
        """Delete every score row currently attached to ``evaluation``."""

        self._session.execute(
            delete(EvaluationScore).where(
                EvaluationScore.evaluation_id == evaluation.id
            )
        )
        self._session.expire(evaluation, ["scores"])

    @staticmethod
    def validate_entries(scores: Sequence[ScoreEntry]) -> None:
        """Reject empty score sets and sets scoring a criterion twice."""
        if not scores:
            raise ValidationError(
                ErrorCode.INVALID_EVALUATION, "At least one score is required"
            )
        seen: set[int] = set()
        for entry in scores:
            if entry.criterion_id in seen:
                raise ValidationError(
                    ErrorCode.INVALID_EVALUATION,
                    f"Criterion {entry.criterion_id} is scored more than once",
                    {"criterion_id": entry.criterion_id},
                )
            seen.add(entry.criterion_id)
