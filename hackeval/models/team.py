from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    select,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from ..eligibility import Gender, MemberDescriptor, MemberRole
from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .submission import Submission
    from .user import User


class Team(Base):
    """A registered team and the root of its aggregate.

    The roster, mentor, community representative, leader account and
    submission are all owned by the team and removed with it.
    """

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(191), nullable=False)
    theme: Mapped[str] = mapped_column(String(191), nullable=False)
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
    members: Mapped[list["TeamMember"]] = relationship(
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TeamMember.slot_index",
    )
    faculty_mentor: Mapped[Optional["FacultyMentor"]] = relationship(
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )
    community_representative: Mapped[Optional["CommunityRepresentative"]] = relationship(
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )
    leader_account: Mapped[Optional["User"]] = relationship(
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )
    submission: Mapped[Optional["Submission"]] = relationship(
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )

    __table_args__ = (UniqueConstraint("name", name="uq_teams_name"),)

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name='{self.name}', theme='{self.theme}')>"

    @classmethod
    def get_by_name(cls, session: Session, name: str) -> Optional["Team"]:
        """Retrieve a team by its unique name."""

        return session.scalar(select(cls).where(cls.name == name))

    @classmethod
    def name_taken(cls, session: Session, name: str) -> bool:
        return session.scalar(select(cls.id).where(cls.name == name)) is not None

    @property
    def leader(self) -> Optional["TeamMember"]:
        """Roster member tagged as the Team Leader."""
        for member in self.members:
            if member.role == MemberRole.LEADER.value:
                return member
        return None

    def to_json(self, *, compact: bool = False) -> dict[str, Any]:
        """Return a JSON-serializable representation of the team aggregate.

        Parameters
        ----------
        compact : bool, default: False
            When ``True`` only the team's own columns are included.
        """
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "theme": self.theme,
            "created_at": dt_iso(self.created_at),
            "updated_at": dt_iso(self.updated_at),
        }
        if compact:
            return data

        data["members"] = [m.to_json() for m in self.members]
        data["faculty_mentor"] = (
            self.faculty_mentor.to_json() if self.faculty_mentor else None
        )
        data["community_representative"] = (
            self.community_representative.to_json()
            if self.community_representative
            else None
        )
        data["submission"] = self.submission.to_json() if self.submission else None
        return data


class TeamMember(Base):
    """One of the six roster slots of a team."""

    __tablename__ = "team_members"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot_index: Mapped[int] = mapped_column(Integer, nullable=False)
    full_name: Mapped[str] = mapped_column(String(191), nullable=False)
    email: Mapped[str] = mapped_column(String(191), nullable=False, index=True)
    gender: Mapped[str] = mapped_column(String(10), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    is_ieee_member: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    ieee_number: Mapped[Optional[str]] = mapped_column(String(191), nullable=True)
    school_standard: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    school_id_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    contact_no: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    institute_name: Mapped[Optional[str]] = mapped_column(String(191), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    team: Mapped["Team"] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("team_id", "slot_index", name="uq_team_members_team_slot"),
        CheckConstraint(
            "role IN ('Leader','Member','SchoolStudent')", name="role_enum"
        ),
        CheckConstraint("gender IN ('Male','Female','Other')", name="gender_enum"),
        Index("ix_team_members_team_role", "team_id", "role"),
    )

    def __repr__(self) -> str:
        return (
            f"<TeamMember(id={self.id}, team_id={self.team_id}, "
            f"slot={self.slot_index}, role='{self.role}')>"
        )

    @classmethod
    def from_descriptor(cls, slot_index: int, member: MemberDescriptor) -> "TeamMember":
        """Build an unsaved roster row from a validated descriptor."""

        return cls(
            slot_index=slot_index,
            full_name=member.full_name,
            email=member.email,
            gender=member.gender.value,
            role=member.role.value,
            is_ieee_member=bool(member.is_ieee_member),
            ieee_number=member.ieee_number,
            school_standard=member.school_standard,
            school_id_url=member.artifact_url,
            contact_no=member.contact_no,
            institute_name=member.institute_name,
        )

    def to_descriptor(self) -> MemberDescriptor:
        return MemberDescriptor(
            full_name=self.full_name,
            email=self.email,
            gender=Gender(self.gender),
            role=MemberRole(self.role),
            is_ieee_member=self.is_ieee_member,
            ieee_number=self.ieee_number,
            school_standard=self.school_standard,
            artifact_url=self.school_id_url,
            contact_no=self.contact_no,
            institute_name=self.institute_name,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slot_index": self.slot_index,
            "full_name": self.full_name,
            "email": self.email,
            "gender": self.gender,
            "role": self.role,
            "is_ieee_member": self.is_ieee_member,
            "ieee_number": self.ieee_number,
            "school_standard": self.school_standard,
            "school_id_url": self.school_id_url,
            "contact_no": self.contact_no,
            "institute_name": self.institute_name,
        }


class FacultyMentor(Base):
    __tablename__ = "faculty_mentors"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    name: Mapped[str] = mapped_column(String(191), nullable=False)
    email: Mapped[str] = mapped_column(String(191), nullable=False)
    faculty_id: Mapped[str] = mapped_column(String(191), nullable=False)

    team: Mapped["Team"] = relationship(back_populates="faculty_mentor")

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "faculty_id": self.faculty_id,
        }


class CommunityRepresentative(Base):
    __tablename__ = "community_representatives"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    name: Mapped[str] = mapped_column(String(191), nullable=False)
    email: Mapped[str] = mapped_column(String(191), nullable=False)
    affiliation: Mapped[str] = mapped_column(String(191), nullable=False)

    team: Mapped["Team"] = relationship(back_populates="community_representative")

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "affiliation": self.affiliation,
        }
