"""Request and result shapes for the public workflow entry points."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union

from .eligibility import Gender, MemberDescriptor, MemberRole
from .errors import ErrorCode, ValidationError
from .scoring.normalizer import ScoreEntry
from .storage.artifacts import ArtifactPayload

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_FILE_FIELD_RE = re.compile(r"^schoolIdPdf_(\d+)$")
_TRUTHY = {"yes", "true", "1", "y", "on"}


@dataclass(frozen=True)
class MentorDescriptor:
    name: str
    email: str
    faculty_id: str


@dataclass(frozen=True)
class RepresentativeDescriptor:
    name: str
    email: str
    affiliation: str


@dataclass(frozen=True)
class RegistrationRequest:
    """Everything a team submits to register.

    ``artifacts`` maps roster slot indexes to the files uploaded for them.
    """

    team_name: str
    theme: str
    members: tuple[MemberDescriptor, ...]
    faculty_mentor: MentorDescriptor
    community_representative: RepresentativeDescriptor
    artifacts: Mapping[int, ArtifactPayload] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        files: Optional[Mapping[Union[int, str], ArtifactPayload]] = None,
    ) -> "RegistrationRequest":
        """Build a request from the JSON body of the registration form.

        Keys follow the form's camelCase names (``teamName``, ``members``,
        ``facultyMentor``, ``communityRepresentative``). ``files`` may be keyed
        by slot index or by form field name (``schoolIdPdf_<slot>``).

        Raises
        ------
        ValidationError
            ``INVALID_REGISTRATION`` listing every missing or malformed field.
        """

        problems: list[dict[str, str]] = []

        def required(source: Mapping[str, Any], key: str, path: str) -> str:
            value = source.get(key)
            if value is None or not str(value).strip():
                problems.append({"field": path, "message": f"{path} is required"})
                return ""
            return str(value).strip()

        def email(source: Mapping[str, Any], key: str, path: str) -> str:
            value = required(source, key, path)
            if value and not _EMAIL_RE.match(value):
                problems.append({"field": path, "message": f"Valid {path} is required"})
            return value

        team_name = required(data, "teamName", "teamName")
        theme = required(data, "theme", "theme")

        raw_members = data.get("members")
        members: list[MemberDescriptor] = []
        if not isinstance(raw_members, Sequence) or isinstance(raw_members, (str, bytes)):
            problems.append({"field": "members", "message": "members must be a list"})
            raw_members = []
        for i, raw in enumerate(raw_members):
            path = f"members[{i}]"
            if not isinstance(raw, Mapping):
                problems.append({"field": path, "message": f"{path} must be an object"})
                continue
            full_name = required(raw, "fullName", f"{path}.fullName")
            member_email = email(raw, "email", f"{path}.email")
            try:
                gender = Gender.parse(raw.get("gender", ""))
            except ValueError:
                problems.append(
                    {"field": f"{path}.gender", "message": "Valid gender is required"}
                )
                continue
            try:
                role = MemberRole.parse(raw.get("role", ""))
            except ValueError:
                problems.append(
                    {"field": f"{path}.role", "message": "Valid member role is required"}
                )
                continue
            members.append(
                MemberDescriptor(
                    full_name=full_name,
                    email=member_email,
                    gender=gender,
                    role=role,
                    is_ieee_member=_as_bool(raw.get("isIeeeMember")),
                    ieee_number=_optional(raw.get("ieeeNumber")),
                    school_standard=_optional(raw.get("schoolStandard")),
                    contact_no=_optional(raw.get("contactNo")),
                    institute_name=_optional(raw.get("instituteName")),
                )
            )

        mentor_raw = data.get("facultyMentor") or {}
        mentor = MentorDescriptor(
            name=required(mentor_raw, "name", "facultyMentor.name"),
            email=email(mentor_raw, "email", "facultyMentor.email"),
            faculty_id=required(mentor_raw, "facultyId", "facultyMentor.facultyId"),
        )
        rep_raw = data.get("communityRepresentative") or {}
        representative = RepresentativeDescriptor(
            name=required(rep_raw, "name", "communityRepresentative.name"),
            email=email(rep_raw, "email", "communityRepresentative.email"),
            affiliation=required(
                rep_raw, "affiliation", "communityRepresentative.affiliation"
            ),
        )

        artifacts: dict[int, ArtifactPayload] = {}
        for key, payload in (files or {}).items():
            slot = _slot_of(key)
            if slot is None:
                problems.append({"field": str(key), "message": "Unknown file field"})
                continue
            artifacts[slot] = payload

        if problems:
            raise ValidationError(
                ErrorCode.INVALID_REGISTRATION, "Validation failed", problems
            )

        return cls(
            team_name=team_name,
            theme=theme,
            members=tuple(members),
            faculty_mentor=mentor,
            community_representative=representative,
            artifacts=artifacts,
        )


@dataclass(frozen=True)
class RegistrationResult:
    team_id: int
    team_name: str

    def to_json(self) -> dict[str, Any]:
        return {"teamId": self.team_id, "teamName": self.team_name}


@dataclass(frozen=True)
class EvaluationResult:
    evaluation_id: int
    total: float
    created: bool = True

    def to_json(self) -> dict[str, Any]:
        return {"evaluationId": self.evaluation_id, "totalScore": self.total}


def parse_scores(raw: Any) -> list[ScoreEntry]:
    """Coerce a client score set into :class:`ScoreEntry` values.

    Items may already be ``ScoreEntry`` objects, mappings with
    ``criterionId``/``score`` keys, or ``(criterion_id, score)`` pairs.
    """

    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise ValidationError(ErrorCode.INVALID_EVALUATION, "Invalid evaluation data")
    entries: list[ScoreEntry] = []
    for item in raw:
        if isinstance(item, ScoreEntry):
            entries.append(item)
        elif isinstance(item, Mapping):
            entries.append(ScoreEntry.from_dict(item))
        elif isinstance(item, Sequence) and not isinstance(item, (str, bytes)) and len(item) == 2:
            entries.append(ScoreEntry.from_dict({"criterion_id": item[0], "score": item[1]}))
        else:
            raise ValidationError(
                ErrorCode.INVALID_EVALUATION, f"Invalid score entry {item!r}"
            )
    return entries


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUTHY


def _optional(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _slot_of(key: Union[int, str]) -> Optional[int]:
    if isinstance(key, int):
        return key
    match = _FILE_FIELD_RE.match(str(key))
    return int(match.group(1)) if match else None
