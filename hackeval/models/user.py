from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, String, select, text
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates
from werkzeug.security import check_password_hash, generate_password_hash

from ..db.utils import dt_iso
from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .evaluation import Evaluation
    from .team import Team


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    COORDINATOR = "coordinator"
    EVALUATOR = "evaluator"
    PARTICIPANT = "participant"
    HEAD = "head"


class User(Base):
    """A login-capable account.

    Participants are provisioned automatically for a team's leader during
    registration and point back at their team. Evaluators, coordinators and
    admins have no team.
    """

    def __init__(
        self,
        name: str,
        email: str,
        role: "UserRole | str" = UserRole.PARTICIPANT,
        password: Optional[str] = None,
        password_hash: Optional[str] = None,
        team_id: Optional[int] = None,
        team: Optional["Team"] = None,
    ):
        """Create a new :class:`User` record.

        Parameters
        ----------
        name : str
            Display name.
        email : str
            Login email; stored trimmed and lower-cased.
        role : UserRole | str, default: ``UserRole.PARTICIPANT``
            Account role.
        password : str, optional
            Plain password, hashed before it is stored. Ignored when
            ``password_hash`` is supplied.
        password_hash : str, optional
            Pre-computed Werkzeug password hash.
        team_id : int, optional
            Owning team for participant accounts.
        team : Team, optional
            Owning team object, as an alternative to ``team_id``.
        """

        self.name = name
        self.email = email
        self.role = UserRole(role).value
        if password_hash is not None:
            self.password_hash = password_hash
        elif password is not None:
            self.set_password(password)
        if team is not None:
            self.team = team
        elif team_id is not None:
            self.team_id = team_id

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(191), nullable=False)
    email: Mapped[str] = mapped_column(String(191), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.PARTICIPANT.value
    )
    team_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=True,
        unique=True,
    )
    deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
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

    # relationships
    team: Mapped[Optional["Team"]] = relationship(back_populates="leader_account")
    evaluations: Mapped[list["Evaluation"]] = relationship(
        back_populates="evaluator",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin','coordinator','evaluator','participant','head')",
            name="role_enum",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<User(id={self.id}, email='{self.email}', role='{self.role}', "
            f"team_id={self.team_id})>"
        )

    @validates("email")
    def _normalize_email(self, _key: str, value: str) -> str:
        return normalize_email(value)

    @classmethod
    def get_by_email(cls, session: Session, email: str) -> Optional["User"]:
        """Retrieve a live (not soft-deleted) user by login email."""

        return session.scalar(
            select(cls).where(cls.email == normalize_email(email), cls.deleted.is_(False))
        )

    @classmethod
    def email_taken(cls, session: Session, email: str) -> bool:
        """Whether any account, deleted or not, already holds ``email``."""

        return (
            session.scalar(select(cls.id).where(cls.email == normalize_email(email)))
            is not None
        )

    def set_password(self, password: str) -> None:
        """Hash and store ``password``."""
        self.password_hash = generate_password_hash(password)
        self.updated_at = datetime.now(timezone.utc)

    def check_password(self, password: str) -> bool:
        return bool(self.password_hash) and check_password_hash(
            self.password_hash, password
        )

    @property
    def is_evaluator(self) -> bool:
        return self.role == UserRole.EVALUATOR.value

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "team_id": self.team_id,
            "last_login": dt_iso(self.last_login),
            "created_at": dt_iso(self.created_at),
        }


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()
