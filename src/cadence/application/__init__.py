# Application Package
from .ease_policy import AdditiveEasePolicy, EasePolicy, MultiplicativeEasePolicy, policy_for
from .scheduler import grade, new_card_state, reset_card, suspend_card, unsuspend_card
from .session import Session, SessionStatus, next_card, stats
from .study_service import AnswerResult, StudyContext, StudyService

__all__ = [
    "AdditiveEasePolicy",
    "EasePolicy",
    "MultiplicativeEasePolicy",
    "policy_for",
    "grade",
    "new_card_state",
    "reset_card",
    "suspend_card",
    "unsuspend_card",
    "Session",
    "SessionStatus",
    "next_card",
    "stats",
    "AnswerResult",
    "StudyContext",
    "StudyService",
]
