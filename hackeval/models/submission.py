from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping, Optional

from sqlalchemy import DateTime, ForeignKey, String, Text, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .evaluation import Evaluation
    from .team import Team

# Client-editable columns, replaced wholesale on every save.
SUBMISSION_FIELDS = (
    "title",
    "tagline",
    "description",
    "problem_statement",
    "demo_video_url",
    "live_link_url",
    "code_repo_url",
    "ppt_url",
)


class Submission(Base):
    """The single project submission of a team."""

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    title: Mapped[Optional[str]] = mapped_column(String(191), nullable=True)
    tagline: Mapped[Optional[str]] = mapped_column(String(191), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    problem_statement: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    demo_video_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    live_link_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    code_repo_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    ppt_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
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

    team: Mapped["Team"] = relationship(back_populates="submission")
    evaluations: Mapped[list["Evaluation"]] = relationship(
        back_populates="submission",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Submission(id={self.id}, team_id={self.team_id}, "
            f"title='{self.title}')>"
        )

    @classmethod
    def get_by_team(cls, session: Session, team_id: int) -> Optional["Submission"]:
        """Retrieve the submission owned by ``team_id``, if any."""

        return session.scalar(select(cls).where(cls.team_id == team_id))

    def replace_fields(self, fields: Mapping[str, Any]) -> None:
        """Overwrite every editable column from ``fields``.

        Columns missing from ``fields`` are cleared, so the saved state never
        mixes values from two different saves. Unknown keys raise ``KeyError``.
        """

        unknown = set(fields) - set(SUBMISSION_FIELDS)
        if unknown:
            raise KeyError(f"Unknown submission fields: {sorted(unknown)}")
        for name in SUBMISSION_FIELDS:
            setattr(self, name, fields.get(name))
        self.updated_at = datetime.now(timezone.utc)

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "team_id": self.team_id}
        for name in SUBMISSION_FIELDS:
            data[name] = getattr(self, name)
        data["created_at"] = dt_iso(self.created_at)
        data["updated_at"] = dt_iso(self.updated_at)
        return data
