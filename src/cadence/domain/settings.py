"""
Per-project scheduling settings.

Settings are validated once, at load time, and are immutable afterwards.
Out-of-range values are rejected, never clamped.
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from . import constants as c
from .errors import InvalidSettingsError
from .models import CardPhase

logger = logging.getLogger(__name__)


class SchedulerSettings(BaseModel):
    """
    Tunable constants for the scheduling algorithm.

    Field names are snake_case; the UPPER_CASE names used in project
    settings files are accepted as aliases.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=lambda name: name.upper(),
    )

    # Daily limits
    new_cards_per_day: int = Field(default=c.DEFAULT_NEW_CARDS_PER_DAY, ge=0)
    max_reviews_per_day: int = Field(default=c.DEFAULT_MAX_REVIEWS_PER_DAY, ge=0)

    # Ladders (minutes)
    learning_steps: tuple[int, ...] = c.DEFAULT_LEARNING_STEPS
    relearning_steps: tuple[int, ...] = c.DEFAULT_RELEARNING_STEPS

    # Graduation (days)
    graduating_interval: int = Field(default=c.DEFAULT_GRADUATING_INTERVAL, ge=1)
    easy_interval: int = Field(default=c.DEFAULT_EASY_INTERVAL, ge=1)

    # Ease
    starting_ease: float = c.DEFAULT_STARTING_EASE
    minimum_ease: float = Field(default=c.DEFAULT_MINIMUM_EASE, gt=0)
    easy_bonus: float = Field(default=c.DEFAULT_EASY_BONUS, ge=1.0)
    easy_ease_step: float = Field(default=c.DEFAULT_EASY_EASE_STEP, ge=0)
    ease_policy: Literal["additive", "multiplicative"] = "additive"

    # Interval modifiers
    hard_interval_factor: float = Field(default=c.DEFAULT_HARD_INTERVAL_FACTOR, gt=0, le=1)
    easy_interval_factor: float = Field(default=c.DEFAULT_EASY_INTERVAL_FACTOR, ge=1.0)
    interval_modifier: float = Field(default=c.DEFAULT_INTERVAL_MODIFIER, gt=0)

    # Lapses
    lapse_recovery_factor: float = Field(default=c.DEFAULT_LAPSE_RECOVERY_FACTOR, ge=0, le=1)
    lapse_ease_penalty: float = Field(default=c.DEFAULT_LAPSE_EASE_PENALTY, ge=0, le=1)
    leech_threshold: int = Field(default=c.DEFAULT_LEECH_THRESHOLD, ge=1)
    leech_action: Literal["suspend", "tag"] = "suspend"

    # Queue options
    new_card_order: Literal["random", "fifo"] = "random"
    review_ahead: bool = False
    bury_siblings: bool = False
    max_interval: int = Field(default=c.DEFAULT_MAX_INTERVAL, ge=1)

    @field_validator("learning_steps", "relearning_steps")
    @classmethod
    def steps_must_be_positive(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        for step in v:
            if step <= 0:
                raise ValueError(f"step ladder entries must be positive, got {step}")
        return v

    @model_validator(mode="after")
    def check_cross_field_ranges(self) -> "SchedulerSettings":
        if self.starting_ease < self.minimum_ease:
            raise ValueError(
                f"starting_ease ({self.starting_ease}) must be >= minimum_ease ({self.minimum_ease})"
            )
        if self.graduating_interval > self.max_interval:
            raise ValueError("graduating_interval must not exceed max_interval")
        if self.easy_interval > self.max_interval:
            raise ValueError("easy_interval must not exceed max_interval")
        return self

    def ladder_for(self, phase: CardPhase) -> tuple[int, ...]:
        """Step ladder used while a card is in the given phase."""
        if phase is CardPhase.RELEARNING:
            return self.relearning_steps
        return self.learning_steps


DEFAULT_SETTINGS = SchedulerSettings()


def load_settings(data: Mapping[str, Any] | None = None) -> SchedulerSettings:
    """
    Validate a settings mapping.

    Raises:
        InvalidSettingsError: if any value is missing its range.
    """
    try:
        return SchedulerSettings.model_validate(dict(data or {}))
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "settings" for err in errors)
        logger.warning(f"Rejected scheduler settings ({fields})")
        raise InvalidSettingsError(f"Invalid scheduler settings: {e}", errors) from e


class UniqueKeyLoader(yaml.SafeLoader):
    """
    YAML loader that forbids duplicate keys.
    """

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in seen:
                raise yaml.constructor.ConstructorError(
                    None, None, f"found duplicate key '{key}'", key_node.start_mark
                )
            seen.add(key)
        return super().construct_mapping(node, deep)


def load_settings_file(path: Path) -> SchedulerSettings:
    """
    Load project settings from a YAML file.

    An empty file yields the defaults; duplicate keys are rejected.
    """
    try:
        raw = yaml.load(path.read_text(encoding="utf-8"), Loader=UniqueKeyLoader)
    except OSError as e:
        raise InvalidSettingsError(f"Could not read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise InvalidSettingsError(f"Could not parse {path}: {e}") from e

    if raw is None:
        return DEFAULT_SETTINGS
    if not isinstance(raw, dict):
        raise InvalidSettingsError(f"{path} must contain a mapping of settings")
    return load_settings(raw)
