"""Error taxonomy for the scheduling core."""

from typing import Any


class CadenceError(Exception):
    """Base class for every error raised by cadence."""


class InvalidSettingsError(CadenceError, ValueError):
    """Settings violated a range rule and were rejected at load time."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class CardStateError(CadenceError):
    """A card cannot be graded in its current state."""


class SuspendedCardError(CardStateError):
    def __init__(self, card_id: str):
        super().__init__(f"Card {card_id} is suspended and cannot be graded")
        self.card_id = card_id


class MalformedCardError(CardStateError):
    def __init__(self, card_id: str, reason: str):
        super().__init__(f"Card {card_id} is malformed: {reason}")
        self.card_id = card_id
        self.reason = reason


class InvalidGradeError(CardStateError, ValueError):
    def __init__(self, value: Any):
        super().__init__(f"Unrecognized grade: {value!r}")
        self.value = value


class UnknownCardError(CardStateError, KeyError):
    def __init__(self, card_id: str):
        super().__init__(f"Unknown card: {card_id}")
        self.card_id = card_id

    def __str__(self) -> str:
        return str(self.args[0])


class PersistenceError(CadenceError):
    """The external card-state store or review log failed."""
