"""Database models for weighted evaluation of submissions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .submission import Submission
    from .user import User


class EvaluationCriterion(Base):
    """A named, weighted dimension applied to every submission."""

    __tablename__ = "evaluation_criteria"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(191), nullable=False)
    """Short label shown to evaluators."""

    weight: Mapped[int] = mapped_column(Integer, nullable=False)
    """Relative weight, conceptually 0-100. Weights need not sum to 100."""

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    """What evaluators should look for."""

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<EvaluationCriterion(id={id}, name={name}, weight={weight})>".format(
            id=self.id, name=self.name, weight=self.weight
        )

    @classmethod
    def list_all(cls, session: Session) -> list["EvaluationCriterion"]:
        """Return every criterion, heaviest first."""

        stmt = select(cls).order_by(cls.weight.desc(), cls.id.asc())
        return list(session.scalars(stmt).all())

    def is_referenced(self, session: Session) -> bool:
        """Whether any stored score still points at this criterion."""

        count = session.scalar(
            select(func.count(EvaluationScore.id)).where(
                EvaluationScore.criterion_id == self.id
            )
        )
        return bool(count)

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "description": self.description,
        }


class Evaluation(Base):
    """One evaluator's scoring of one submission.

    At most one row exists per (submission, evaluator) pair; resubmissions
    update it in place and replace its score rows.
    """

    __tablename__ = "evaluations"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    evaluator_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    total_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    submission: Mapped["Submission"] = relationship(back_populates="evaluations")
    evaluator: Mapped["User"] = relationship(back_populates="evaluations")
    scores: Mapped[list["EvaluationScore"]] = relationship(
        back_populates="evaluation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="EvaluationScore.criterion_id",
    )

    __table_args__ = (
        UniqueConstraint(
            "submission_id",
            "evaluator_id",
            name="uq_evaluations_submission_evaluator",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Evaluation(id={self.id}, submission_id={self.submission_id}, "
            f"evaluator_id={self.evaluator_id}, total_score={self.total_score})>"
        )

    @classmethod
    def get_by_submission_and_evaluator(
        cls,
        session: Session,
        submission_id: int,
        evaluator_id: int,
        *,
        lock: bool = False,
    ) -> Optional["Evaluation"]:
        """Retrieve the evaluation for the (submission, evaluator) pair.

        With ``lock=True`` the row is selected ``FOR UPDATE`` on backends that
        support it, serializing concurrent resubmissions of the same pair.
        """

        stmt = select(cls).where(
            cls.submission_id == submission_id,
            cls.evaluator_id == evaluator_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return session.scalar(stmt)

    def to_json(self, *, include_scores: bool = True) -> dict[str, Any]:
        """Return the evaluation as a JSON-serializable dict.

        Scores are rendered with their criterion name and weight when
        ``include_scores`` is ``True``.
        """
        data: dict[str, Any] = {
            "id": self.id,
            "submission_id": self.submission_id,
            "evaluator_id": self.evaluator_id,
            "total_score": self.total_score,
            "comments": self.comments,
            "created_at": dt_iso(self.created_at),
            "updated_at": dt_iso(self.updated_at),
        }
        if include_scores:
            data["scores"] = [s.to_json() for s in self.scores]
        return data


class EvaluationScore(Base):
    """Raw score given for one criterion within an evaluation."""

    __tablename__ = "evaluation_scores"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    evaluation_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("evaluations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    criterion_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("evaluation_criteria.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    score: Mapped[float] = mapped_column(Float, nullable=False)

    evaluation: Mapped["Evaluation"] = relationship(back_populates="scores")
    criterion: Mapped["EvaluationCriterion"] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "evaluation_id",
            "criterion_id",
            name="uq_evaluation_scores_evaluation_criterion",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<EvaluationScore(evaluation_id={self.evaluation_id}, "
            f"criterion_id={self.criterion_id}, score={self.score})>"
        )

    def to_json(self) -> dict[str, Any]:
        criterion = self.criterion
        return {
            "criterion_id": self.criterion_id,
            "criterion": criterion.name if criterion is not None else None,
            "weight": criterion.weight if criterion is not None else None,
            "score": self.score,
        }
