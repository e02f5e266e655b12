"""
Ease growth policies applied when a Review card is answered Easy.

The growth rule is pluggable; settings pick the default via ``ease_policy``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from cadence.domain.settings import SchedulerSettings


class EasePolicy(ABC):
    """Computes the ease after an Easy answer, before the minimum-ease floor."""

    @abstractmethod
    def on_easy(self, ease: float) -> float:
        pass


@dataclass(frozen=True)
class AdditiveEasePolicy(EasePolicy):
    """ease + step (the classic SM-2/Anki +0.15)."""

    step: float

    def on_easy(self, ease: float) -> float:
        return ease + self.step


@dataclass(frozen=True)
class MultiplicativeEasePolicy(EasePolicy):
    """ease * bonus."""

    bonus: float

    def on_easy(self, ease: float) -> float:
        return ease * self.bonus


def policy_for(settings: SchedulerSettings) -> EasePolicy:
    """Default policy selected by the settings."""
    if settings.ease_policy == "multiplicative":
        return MultiplicativeEasePolicy(bonus=settings.easy_bonus)
    return AdditiveEasePolicy(step=settings.easy_ease_step)
