"""Roster composition rules applied when a team registers.

Everything here is pure: the checks read plain :class:`MemberDescriptor`
values and never touch the database or the network.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence

from .errors import ErrorCode, ValidationError

ROSTER_SIZE = 6
DEFAULT_SCHOOL_STANDARDS = ("6th", "7th", "8th", "9th")


class MemberRole(str, enum.Enum):
    LEADER = "Leader"
    MEMBER = "Member"
    SCHOOL_STUDENT = "SchoolStudent"

    @classmethod
    def parse(cls, value: "str | MemberRole") -> "MemberRole":
        """Accept both the stored names and the legacy ``Team*`` spellings."""
        if isinstance(value, cls):
            return value
        aliases = {"TeamLeader": cls.LEADER, "TeamMember": cls.MEMBER}
        text = str(value).strip()
        if text in aliases:
            return aliases[text]
        return cls(text)


class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: "str | Gender") -> "Gender":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().capitalize())


@dataclass(frozen=True)
class MemberDescriptor:
    """One roster slot as submitted by the client."""

    full_name: str
    email: str
    gender: Gender
    role: MemberRole
    is_ieee_member: bool = False
    ieee_number: Optional[str] = None
    school_standard: Optional[str] = None
    artifact_url: Optional[str] = None
    contact_no: Optional[str] = None
    institute_name: Optional[str] = None

    def with_artifact(self, url: Optional[str]) -> "MemberDescriptor":
        return replace(self, artifact_url=url)


class SchoolStudentPolicy(str, enum.Enum):
    EXACTLY_ONE = "exactly_one"
    AT_LEAST_ONE = "at_least_one"


@dataclass(frozen=True)
class EligibilityRules:
    """Tunable parameters of the roster checks.

    Attributes
    ----------
    roster_size : int
        Required number of roster members.
    school_student_policy : SchoolStudentPolicy
        Whether exactly one or at least one SchoolStudent is required.
    allowed_school_standards : tuple[str, ...]
        Accepted school-standard values, compared case-insensitively. An empty
        tuple accepts any non-empty value.
    """

    roster_size: int = ROSTER_SIZE
    school_student_policy: SchoolStudentPolicy = SchoolStudentPolicy.EXACTLY_ONE
    allowed_school_standards: tuple[str, ...] = field(default=DEFAULT_SCHOOL_STANDARDS)


DEFAULT_RULES = EligibilityRules()


@dataclass(frozen=True)
class EligibilityResult:
    """Outcome of :func:`check_roster`. ``code`` is ``None`` when accepted."""

    code: Optional[ErrorCode] = None
    message: Optional[str] = None
    slot: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.code is None

    def raise_for_violation(self) -> None:
        """Raise :class:`ValidationError` when a rule was violated."""
        if self.code is not None:
            details = {"slot": self.slot} if self.slot is not None else None
            raise ValidationError(self.code, self.message or self.code.value, details)


ACCEPTED = EligibilityResult()


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _standard_allowed(value: str, allowed: tuple[str, ...]) -> bool:
    if not allowed:
        return True
    normalized = value.strip().lower()
    return any(normalized == a.lower() for a in allowed)


def check_roster(
    members: Sequence[MemberDescriptor],
    rules: EligibilityRules = DEFAULT_RULES,
) -> EligibilityResult:
    """Check ``members`` against the roster composition rules.

    Rules are evaluated in a fixed order and the first violation wins:

    1. roster size (``WRONG_ROSTER_SIZE``)
    2. exactly one Leader (``LEADER_COUNT_INVALID``)
    3. the Leader is an IEEE member with a number (``LEADER_NOT_IEEE_MEMBER``)
    4. SchoolStudent count per policy (``SCHOOL_STUDENT_COUNT_INVALID``)
    5. every SchoolStudent has a valid standard and an identity document
       (``SCHOOL_STUDENT_MISSING_FIELDS``)
    6. at least one Female member (``NO_FEMALE_MEMBER``)
    """

    if len(members) != rules.roster_size:
        return EligibilityResult(
            ErrorCode.WRONG_ROSTER_SIZE,
            f"Team must have exactly {rules.roster_size} members, got {len(members)}",
        )

    leader_slots = [i for i, m in enumerate(members) if m.role is MemberRole.LEADER]
    if len(leader_slots) != 1:
        return EligibilityResult(
            ErrorCode.LEADER_COUNT_INVALID,
            f"Team must have exactly one Team Leader, got {len(leader_slots)}",
        )

    leader_slot = leader_slots[0]
    leader = members[leader_slot]
    if not leader.is_ieee_member or _blank(leader.ieee_number):
        return EligibilityResult(
            ErrorCode.LEADER_NOT_IEEE_MEMBER,
            "Team Leader must be an IEEE member with valid membership number",
            leader_slot,
        )

    student_slots = [
        i for i, m in enumerate(members) if m.role is MemberRole.SCHOOL_STUDENT
    ]
    if rules.school_student_policy is SchoolStudentPolicy.EXACTLY_ONE:
        count_ok = len(student_slots) == 1
        expectation = "exactly one"
    else:
        count_ok = len(student_slots) >= 1
        expectation = "at least one"
    if not count_ok:
        return EligibilityResult(
            ErrorCode.SCHOOL_STUDENT_COUNT_INVALID,
            f"Team must have {expectation} School Student, got {len(student_slots)}",
        )

    for slot in student_slots:
        student = members[slot]
        if _blank(student.school_standard) or not _standard_allowed(
            student.school_standard or "", rules.allowed_school_standards
        ):
            allowed = ", ".join(rules.allowed_school_standards) or "any"
            return EligibilityResult(
                ErrorCode.SCHOOL_STUDENT_MISSING_FIELDS,
                f"School Student must have a valid school standard ({allowed})",
                slot,
            )
        if _blank(student.artifact_url):
            return EligibilityResult(
                ErrorCode.SCHOOL_STUDENT_MISSING_FIELDS,
                "School Student must have an uploaded school ID document",
                slot,
            )

    if not any(m.gender is Gender.FEMALE for m in members):
        return EligibilityResult(
            ErrorCode.NO_FEMALE_MEMBER,
            "Team must have at least one female member",
        )

    return ACCEPTED


def leader_of(members: Sequence[MemberDescriptor]) -> MemberDescriptor:
    """Return the single Leader of an already validated roster."""
    for member in members:
        if member.role is MemberRole.LEADER:
            return member
    raise ValueError("Roster has no Team Leader")
