"""Transactional workflows: team registration, evaluation and their helpers.

``register_team`` and ``submit_evaluation`` own their transactions and take a
``sessionmaker``. The remaining helpers take an active ``Session`` and leave
committing to the caller.
"""

import logging
import os
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from .db.errors import StoreErrorKind, classify
from .eligibility import (
    DEFAULT_RULES,
    EligibilityRules,
    MemberDescriptor,
    check_roster,
    leader_of,
)
from .errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    UpstreamError,
    ValidationError,
    WorkflowError,
)
from .models import (
    CommunityRepresentative,
    Evaluation,
    EvaluationCriterion,
    EvaluationScore,
    FacultyMentor,
    Submission,
    Team,
    TeamMember,
    User,
    UserRole,
)
from .models.submission import SUBMISSION_FIELDS
from .notifications import Event
from .schemas import (
    EvaluationResult,
    MentorDescriptor,
    RegistrationRequest,
    RegistrationResult,
    RepresentativeDescriptor,
    parse_scores,
)
from .scoring.engine import EvaluationEngine
from .scoring.normalizer import FULL_WEIGHT
from .storage.artifacts import (
    attach_artifacts,
    check_artifact_slots,
    resolve_artifacts,
    validate_payloads,
)

if TYPE_CHECKING:
    from .notifications import Notifier
    from .storage.api import BlobClient

logger = logging.getLogger(__name__)

load_dotenv()
DEFAULT_LEADER_PASSWORD = os.getenv("DEFAULT_LEADER_PASSWORD", "qwert123")

TEAM_REGISTERED = "team.registered"
EVALUATION_SUBMITTED = "evaluation.submitted"

# camelCase names used by the submission form
_SUBMISSION_ALIASES = {
    "problemStatement": "problem_statement",
    "demoVideoUrl": "demo_video_url",
    "liveLinkUrl": "live_link_url",
    "codeRepoUrl": "code_repo_url",
    "pptUrl": "ppt_url",
}


# -------- registration --------
def register_team(
    session_factory: sessionmaker,
    request: RegistrationRequest,
    *,
    blob_client: Optional["BlobClient"] = None,
    notifier: Optional["Notifier"] = None,
    rules: EligibilityRules = DEFAULT_RULES,
    leader_password: Optional[str] = None,
) -> RegistrationResult:
    """Register a team with its roster, mentor, representative and leader account.

    The workflow performs these steps:

    1. Check the roster composition, treating SchoolStudent slots that carry
       a file as having a document, so invalid rosters are rejected before
       any upload. Artifact URLs already present on ``request.members`` are
       discarded, and files on any other slot are rejected.
    2. Upload every attached file and set the resulting URLs on the roster.
    3. In one transaction, re-check eligibility and uniqueness, then create the
       team aggregate and the leader's participant account.
    4. After commit, publish a ``team.registered`` event.

    Uploaded files are not removed when a later step fails; their URLs are
    logged at warning level.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory for the session the registration transaction runs in.
    request : RegistrationRequest
        The submitted team.
    blob_client : Optional[BlobClient]
        Client used for artifact uploads. Created from the environment when
        files are attached and no client is given.
    notifier : Optional[Notifier]
        Receives the ``team.registered`` event. Publishing is best effort.
    rules : EligibilityRules, default: ``DEFAULT_RULES``
        Roster composition parameters.
    leader_password : Optional[str]
        Initial password of the leader account. Defaults to
        ``DEFAULT_LEADER_PASSWORD``.

    Returns
    -------
    RegistrationResult
        Id and name of the new team.

    Raises
    ------
    ValidationError
        For a roster or artifact rule violation.
    ConflictError
        ``TEAM_NAME_TAKEN`` or ``LEADER_EMAIL_TAKEN``, including races lost at
        insert time.
    UpstreamError
        ``ARTIFACT_UPLOAD_FAILED`` or a store failure.
    """

    # only URLs returned by the blob store count as identity documents
    members = [member.with_artifact(None) for member in request.members]
    artifacts = dict(request.artifacts)

    if len(members) != rules.roster_size:
        check_roster(members, rules).raise_for_violation()
    validate_payloads(artifacts, roster_size=rules.roster_size)
    check_artifact_slots(artifacts, members)
    pending = attach_artifacts(members, {slot: f"pending:{slot}" for slot in artifacts})
    check_roster(pending, rules).raise_for_violation()

    urls: dict[int, str] = {}
    if artifacts:
        if blob_client is None:
            from .storage.api import BlobClient

            blob_client = BlobClient()
        urls = resolve_artifacts(artifacts, blob_client, roster_size=rules.roster_size)
    members = attach_artifacts(members, urls)

    leader = leader_of(members)
    try:
        with session_factory.begin() as session:
            team = create_team(
                session,
                team_name=request.team_name,
                theme=request.theme,
                members=members,
                mentor=request.faculty_mentor,
                representative=request.community_representative,
                rules=rules,
                leader_password=leader_password,
            )
            result = RegistrationResult(team_id=team.id, team_name=team.name)
    except SQLAlchemyError as exc:
        _warn_orphaned_artifacts(request.team_name, urls)
        raise _registration_failure(
            session_factory, request.team_name, leader.email, exc
        ) from exc
    except Exception:
        _warn_orphaned_artifacts(request.team_name, urls)
        raise

    logger.info("Registered team %s (id=%s)", result.team_name, result.team_id)
    _publish(
        notifier,
        TEAM_REGISTERED,
        {"team_id": result.team_id, "team_name": result.team_name},
    )
    return result


def create_team(
    session: Session,
    *,
    team_name: str,
    theme: str,
    members: Sequence[MemberDescriptor],
    mentor: MentorDescriptor,
    representative: RepresentativeDescriptor,
    rules: EligibilityRules = DEFAULT_RULES,
    leader_password: Optional[str] = None,
) -> Team:
    """Persist a team aggregate and its leader account inside ``session``.

    Artifact URLs must already be set on ``members``. Nothing is committed.

    Raises
    ------
    ValidationError
        If the roster breaks a composition rule.
    ConflictError
        If the team name or the leader's email is already taken.
    """

    check_roster(members, rules).raise_for_violation()

    if Team.get_by_name(session, team_name) is not None:
        raise ConflictError(
            ErrorCode.TEAM_NAME_TAKEN,
            "Team name already exists",
            {"team_name": team_name},
        )
    leader = leader_of(members)
    if User.email_taken(session, leader.email):
        raise ConflictError(
            ErrorCode.LEADER_EMAIL_TAKEN,
            "Team Leader email is already registered",
            {"email": leader.email},
        )

    team = Team(name=team_name, theme=theme)
    team.members = [
        TeamMember.from_descriptor(slot, member) for slot, member in enumerate(members)
    ]
    team.faculty_mentor = FacultyMentor(
        name=mentor.name, email=mentor.email, faculty_id=mentor.faculty_id
    )
    team.community_representative = CommunityRepresentative(
        name=representative.name,
        email=representative.email,
        affiliation=representative.affiliation,
    )
    session.add(team)
    session.flush()

    _provision_leader_account(session, team, leader, leader_password)
    logger.debug("Created team %s with %d members", team.name, len(team.members))
    return team


def _provision_leader_account(
    session: Session,
    team: Team,
    leader: MemberDescriptor,
    password: Optional[str] = None,
) -> User:
    user = User(
        name=leader.full_name,
        email=leader.email,
        role=UserRole.PARTICIPANT,
        password=password or DEFAULT_LEADER_PASSWORD,
        team=team,
    )
    session.add(user)
    session.flush()
    return user


def _registration_failure(
    session_factory: sessionmaker,
    team_name: str,
    leader_email: str,
    exc: SQLAlchemyError,
) -> WorkflowError:
    """Translate a store failure raised while registering ``team_name``."""

    kind = classify(exc)
    if kind is StoreErrorKind.UNIQUE_VIOLATION:
        # Lost a race between the pre-check and the insert; find out which
        # uniqueness rule the winner claimed.
        with session_factory() as session:
            if Team.name_taken(session, team_name):
                return ConflictError(
                    ErrorCode.TEAM_NAME_TAKEN,
                    "Team name already exists",
                    {"team_name": team_name},
                )
            if User.email_taken(session, leader_email):
                return ConflictError(
                    ErrorCode.LEADER_EMAIL_TAKEN,
                    "Team Leader email is already registered",
                    {"email": leader_email},
                )
    return _store_failure(kind, exc)


# -------- evaluation --------
def submit_evaluation(
    session_factory: sessionmaker,
    evaluator_id: int,
    submission_id: int,
    scores: Any,
    comments: Optional[str] = None,
    *,
    notifier: Optional["Notifier"] = None,
    max_attempts: int = 2,
) -> EvaluationResult:
    """Record one evaluator's scores for a submission, replacing earlier ones.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory for the session each attempt runs in.
    evaluator_id : int
        Account id of the evaluator. It must be a live evaluator account.
    submission_id : int
        Submission being scored.
    scores : Any
        Sequence of ``ScoreEntry`` values, ``{"criterionId", "score"}``
        mappings or ``(criterion_id, score)`` pairs.
    comments : Optional[str]
        Free-text feedback; replaces any previous comments.
    notifier : Optional[Notifier]
        Receives the ``evaluation.submitted`` event. Publishing is best effort.
    max_attempts : int, default: 2
        Transactions tried before a lost insert race is reported. The second
        attempt finds the winner's row and replaces it.

    Returns
    -------
    EvaluationResult
        Id of the stored evaluation and its total.

    Raises
    ------
    ValidationError
        ``INVALID_EVALUATION`` for a malformed score set.
    NotFoundError
        ``SUBMISSION_NOT_FOUND`` or ``EVALUATOR_NOT_FOUND``.
    ConflictError
        ``EVALUATION_CONFLICT`` when every attempt lost a race.
    UpstreamError
        For store failures.
    """

    entries = parse_scores(scores)
    EvaluationEngine.validate_entries(entries)
    if comments is not None and not isinstance(comments, str):
        raise ValidationError(ErrorCode.INVALID_EVALUATION, "Comments must be text")
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        attempt += 1
        try:
            with session_factory.begin() as session:
                _require_submission(session, submission_id)
                _require_evaluator(session, evaluator_id)
                outcome = EvaluationEngine(session).submit(
                    submission_id=submission_id,
                    evaluator_id=evaluator_id,
                    scores=entries,
                    comments=comments,
                )
                result = EvaluationResult(
                    evaluation_id=outcome.evaluation.id,
                    total=outcome.normalized.total,
                    created=outcome.created,
                )
            break
        except SQLAlchemyError as exc:
            kind = classify(exc)
            if kind is StoreErrorKind.UNIQUE_VIOLATION and attempt < max_attempts:
                logger.info(
                    "Evaluation race on submission=%s evaluator=%s; retrying as update",
                    submission_id,
                    evaluator_id,
                )
                continue
            if kind in (
                StoreErrorKind.UNIQUE_VIOLATION,
                StoreErrorKind.FOREIGN_KEY_VIOLATION,
            ):
                raise ConflictError(
                    ErrorCode.EVALUATION_CONFLICT,
                    "Evaluation changed concurrently, please resubmit",
                    {"submission_id": submission_id, "evaluator_id": evaluator_id},
                ) from exc
            raise _store_failure(kind, exc) from exc

    logger.info(
        "Stored evaluation %s for submission %s by evaluator %s (total=%.2f)",
        result.evaluation_id,
        submission_id,
        evaluator_id,
        result.total,
    )
    _publish(
        notifier,
        EVALUATION_SUBMITTED,
        {
            "evaluation_id": result.evaluation_id,
            "submission_id": submission_id,
            "evaluator_id": evaluator_id,
            "total": result.total,
        },
    )
    return result


def _require_submission(session: Session, submission_id: int) -> Submission:
    submission = session.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError(
            ErrorCode.SUBMISSION_NOT_FOUND,
            "Submission not found",
            {"submission_id": submission_id},
        )
    return submission


def _require_evaluator(session: Session, evaluator_id: int) -> User:
    user = session.get(User, evaluator_id)
    if user is None or user.deleted or not user.is_evaluator:
        raise NotFoundError(
            ErrorCode.EVALUATOR_NOT_FOUND,
            "Evaluator not found",
            {"evaluator_id": evaluator_id},
        )
    return user


# -------- submissions --------
def save_submission(
    session: Session, team_id: int, fields: Mapping[str, Any]
) -> Submission:
    """Create or replace the submission of ``team_id``.

    ``fields`` may use snake_case or the form's camelCase keys. Every editable
    column is overwritten; omitted ones are cleared. Other keys are ignored.
    """

    if session.get(Team, team_id) is None:
        raise NotFoundError(
            ErrorCode.TEAM_NOT_FOUND, "Team not found", {"team_id": team_id}
        )

    values = {}
    for key, value in fields.items():
        name = _SUBMISSION_ALIASES.get(key, key)
        if name in SUBMISSION_FIELDS:
            values[name] = value

    submission = Submission.get_by_team(session, team_id)
    if submission is None:
        submission = Submission(team_id=team_id)
        session.add(submission)
    submission.replace_fields(values)
    session.flush()
    return submission


def get_submission(session: Session, team_id: int) -> Optional[Submission]:
    return Submission.get_by_team(session, team_id)


# -------- criteria --------
def create_criterion(
    session: Session, name: str, weight: int, description: str = ""
) -> EvaluationCriterion:
    """Add a scoring criterion. ``weight`` must be an integer in 0-100."""

    criterion = EvaluationCriterion(
        name=_criterion_name(name),
        weight=_criterion_weight(weight),
        description=description or "",
    )
    session.add(criterion)
    session.flush()
    return criterion


def update_criterion(
    session: Session,
    criterion_id: int,
    *,
    name: Optional[str] = None,
    weight: Optional[int] = None,
    description: Optional[str] = None,
) -> EvaluationCriterion:
    """Change the given attributes of a criterion.

    Stored evaluation totals are not recomputed; they keep the weights that
    were current when they were submitted.
    """

    criterion = _require_criterion(session, criterion_id)
    if name is not None:
        criterion.name = _criterion_name(name)
    if weight is not None:
        criterion.weight = _criterion_weight(weight)
    if description is not None:
        criterion.description = description
    session.flush()
    return criterion


def delete_criterion(session: Session, criterion_id: int) -> None:
    """Delete a criterion that no stored score references."""

    criterion = _require_criterion(session, criterion_id)
    if criterion.is_referenced(session):
        raise ConflictError(
            ErrorCode.CRITERION_IN_USE,
            "Criterion is used by existing evaluations",
            {"criterion_id": criterion_id},
        )
    session.delete(criterion)
    session.flush()


def list_criteria(session: Session) -> list[EvaluationCriterion]:
    return EvaluationCriterion.list_all(session)


def _require_criterion(session: Session, criterion_id: int) -> EvaluationCriterion:
    criterion = session.get(EvaluationCriterion, criterion_id)
    if criterion is None:
        raise NotFoundError(
            ErrorCode.CRITERION_NOT_FOUND,
            "Criterion not found",
            {"criterion_id": criterion_id},
        )
    return criterion


def _criterion_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(ErrorCode.INVALID_CRITERION, "Criterion name is required")
    return name.strip()


def _criterion_weight(weight: Any) -> int:
    if isinstance(weight, bool) or not isinstance(weight, int):
        raise ValidationError(
            ErrorCode.INVALID_CRITERION, "Criterion weight must be an integer"
        )
    if not 0 <= weight <= FULL_WEIGHT:
        raise ValidationError(
            ErrorCode.INVALID_CRITERION,
            f"Criterion weight must be between 0 and {FULL_WEIGHT}",
            {"weight": weight},
        )
    return weight


# -------- read helpers --------
def get_team(session: Session, team_id: int) -> Team:
    team = session.get(Team, team_id)
    if team is None:
        raise NotFoundError(
            ErrorCode.TEAM_NOT_FOUND, "Team not found", {"team_id": team_id}
        )
    return team


def list_submissions_for_evaluation(session: Session) -> list[Submission]:
    """Return titled submissions with their team and evaluations loaded."""

    stmt = (
        select(Submission)
        .where(Submission.title.is_not(None))
        .options(
            selectinload(Submission.team),
            selectinload(Submission.evaluations)
            .selectinload(Evaluation.scores)
            .selectinload(EvaluationScore.criterion),
        )
        .order_by(Submission.id)
    )
    return list(session.scalars(stmt).all())


def list_evaluations_for_submission(
    session: Session, submission_id: int
) -> list[Evaluation]:
    stmt = (
        select(Evaluation)
        .where(Evaluation.submission_id == submission_id)
        .options(selectinload(Evaluation.scores).selectinload(EvaluationScore.criterion))
        .order_by(Evaluation.id)
    )
    return list(session.scalars(stmt).all())


def list_evaluations_for_evaluator(
    session: Session, evaluator_id: int
) -> list[Evaluation]:
    stmt = (
        select(Evaluation)
        .where(Evaluation.evaluator_id == evaluator_id)
        .options(selectinload(Evaluation.scores).selectinload(EvaluationScore.criterion))
        .order_by(Evaluation.id)
    )
    return list(session.scalars(stmt).all())


# -------- shared --------
def _store_failure(kind: StoreErrorKind, exc: SQLAlchemyError) -> UpstreamError:
    if kind is StoreErrorKind.TIMEOUT:
        return UpstreamError(ErrorCode.STORE_UNAVAILABLE, "Database unavailable")
    logger.error("Unexpected store failure (%s): %s", kind.value, exc)
    return UpstreamError(ErrorCode.STORE_ERROR, "Database error")


def _warn_orphaned_artifacts(team_name: str, urls: Mapping[int, str]) -> None:
    if urls:
        logger.warning(
            "Registration of %s failed; orphaned artifacts: %s",
            team_name,
            sorted(urls.values()),
        )


def _publish(
    notifier: Optional["Notifier"], event_type: str, payload: dict[str, Any]
) -> None:
    if notifier is None:
        return
    try:
        notifier.publish(Event(type=event_type, payload=payload))
    except Exception as exc:
        # The change is already committed.
        logger.warning("Notification %s not delivered: %s", event_type, exc)
