from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .team import Team, TeamMember, FacultyMentor, CommunityRepresentative  # noqa: F401
from .user import User, UserRole  # noqa: F401
from .submission import Submission  # noqa: F401
from .evaluation import (  # noqa: F401
    EvaluationCriterion,
    Evaluation,
    EvaluationScore,
)

__all__ = [
    "Base",
    "Team",
    "TeamMember",
    "FacultyMentor",
    "CommunityRepresentative",
    "User",
    "UserRole",
    "Submission",
    "EvaluationCriterion",
    "Evaluation",
    "EvaluationScore",
]
