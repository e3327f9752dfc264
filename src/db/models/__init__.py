# SQLAlchemy models
from .base import Base
from .cache import CachedContentRow
from .feedback import ApprovalEventRow, RejectionEventRow
from .mastery import Concept, ExerciseResultRow, LearnerMastery

__all__ = [
    # Base
    "Base",
    # Mastery
    "Concept",
    "LearnerMastery",
    "ExerciseResultRow",
    # Feedback
    "RejectionEventRow",
    "ApprovalEventRow",
    # Cache
    "CachedContentRow",
]
