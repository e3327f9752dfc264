"""
Feedback Module - Learning from reviewer rejections and approvals.

Components:
- categories: RejectionCategory enum and free-text note categorization
- store: FeedbackStore (append-only rejection / approval events)
- learner: FeedbackLearner (concept confidence + prompt-shaping hints)
"""

from src.feedback.categories import RejectionCategory, categorize_note
from src.feedback.learner import ConceptPattern, FeedbackLearner
from src.feedback.store import FeedbackEvent, FeedbackStore

__all__ = [
    "ConceptPattern",
    "FeedbackEvent",
    "FeedbackLearner",
    "FeedbackStore",
    "RejectionCategory",
    "categorize_note",
]
