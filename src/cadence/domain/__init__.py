# Domain Package
from .errors import (
    CadenceError,
    CardStateError,
    InvalidGradeError,
    InvalidSettingsError,
    MalformedCardError,
    PersistenceError,
    SuspendedCardError,
    UnknownCardError,
)
from .models import CardPhase, CardState, DailySummary, Grade, ReviewLogEntry, StudyStats
from .ports import CardStateRepository, ReviewLogRepository
from .settings import DEFAULT_SETTINGS, SchedulerSettings, load_settings, load_settings_file

__all__ = [
    "CadenceError",
    "CardStateError",
    "InvalidGradeError",
    "InvalidSettingsError",
    "MalformedCardError",
    "PersistenceError",
    "SuspendedCardError",
    "UnknownCardError",
    "CardPhase",
    "CardState",
    "DailySummary",
    "Grade",
    "ReviewLogEntry",
    "StudyStats",
    "CardStateRepository",
    "ReviewLogRepository",
    "DEFAULT_SETTINGS",
    "SchedulerSettings",
    "load_settings",
    "load_settings_file",
]
