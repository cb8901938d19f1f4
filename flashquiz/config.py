from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from flashquiz.card_scheduler import SCHEDULERS, SchedulerConfig
from flashquiz.models import GenerationOptions, normalize_question_type

_log = logging.getLogger("flashquiz.config")

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

DEFAULTS = {
    "decks_dir": "decks",
    "db_path": "progress.db",
    "question_types": ["choice", "free_response"],
    "question_type_mix": "auto",
    "front_sides": ["side_a"],
    "back_sides": ["side_b"],
    "cards_per_round": 10,
    "progression_mode": "sequential",
    "randomize": False,
    "mastery_threshold": 3,
    "progressive_learning": "spaced",
    "progressive_learning_spacing": 3,
    "difficulty_weight": 1.0,
    # Review of missed cards in later rounds
    "scheduling_algorithm": "smart_spaced",
    "aggressiveness": "balanced",
    "min_spacing": 2,
    "max_spacing": 8,
    "cluster_limit": 2,
    "progress_ratio": 0.3,
    "review_difficulty_weight": 0.5,
}

# Lower bounds for numeric settings
_MINIMUMS = {
    "cards_per_round": 0,
    "mastery_threshold": 1,
    "progressive_learning_spacing": 0,
    "min_spacing": 0,
    "max_spacing": 0,
    "cluster_limit": 1,
    "progress_ratio": 0.0,
    "review_difficulty_weight": 0.0,
}

# Older config files used the learn-mode settings names
_RENAMED = {
    "questionSides": "front_sides",
    "answerSides": "back_sides",
    "questionTypes": "question_types",
    "questionTypeMix": "question_type_mix",
    "cardsPerRound": "cards_per_round",
    "progressionMode": "progression_mode",
    "masteryThreshold": "mastery_threshold",
    "progressiveLearning": "progressive_learning",
    "progressiveLearningSpacing": "progressive_learning_spacing",
    "difficultyWeight": "difficulty_weight",
    "schedulingAlgorithm": "scheduling_algorithm",
    "minSpacing": "min_spacing",
    "maxSpacing": "max_spacing",
    "clusterLimit": "cluster_limit",
    "progressRatio": "progress_ratio",
}


def coerce_setting(name: str, value):
    """Convert *value* to the type of the default for *name*.

    Raises ValueError when it doesn't fit.  Numbers below their minimum are
    raised to it.
    """
    default = DEFAULTS[name]
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be true or false")
        return value
    if isinstance(default, (int, float)):
        if isinstance(value, bool):
            raise ValueError(f"{name} must be a number")
        try:
            number = type(default)(value)
        except (TypeError, ValueError, OverflowError):
            raise ValueError(f"{name} must be a number, got {value!r}") from None
        if name in _MINIMUMS:
            number = max(type(default)(_MINIMUMS[name]), number)
        return number
    if isinstance(default, list):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"{name} must be a list of strings")
        return list(value)
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


@dataclass
class Settings:
    decks_dir: str = DEFAULTS["decks_dir"]
    db_path: str = DEFAULTS["db_path"]
    question_types: list[str] = field(default_factory=lambda: list(DEFAULTS["question_types"]))
    question_type_mix: str = DEFAULTS["question_type_mix"]
    front_sides: list[str] = field(default_factory=lambda: list(DEFAULTS["front_sides"]))
    back_sides: list[str] = field(default_factory=lambda: list(DEFAULTS["back_sides"]))
    cards_per_round: int = DEFAULTS["cards_per_round"]
    progression_mode: str = DEFAULTS["progression_mode"]
    randomize: bool = DEFAULTS["randomize"]
    mastery_threshold: int = DEFAULTS["mastery_threshold"]
    progressive_learning: str = DEFAULTS["progressive_learning"]
    progressive_learning_spacing: int = DEFAULTS["progressive_learning_spacing"]
    difficulty_weight: float = DEFAULTS["difficulty_weight"]
    scheduling_algorithm: str = DEFAULTS["scheduling_algorithm"]
    aggressiveness: str = DEFAULTS["aggressiveness"]
    min_spacing: int = DEFAULTS["min_spacing"]
    max_spacing: int = DEFAULTS["max_spacing"]
    cluster_limit: int = DEFAULTS["cluster_limit"]
    progress_ratio: float = DEFAULTS["progress_ratio"]
    review_difficulty_weight: float = DEFAULTS["review_difficulty_weight"]

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def decks_full_path(self) -> Path:
        return self.project_root / self.decks_dir

    @property
    def db_full_path(self) -> Path:
        return self.project_root / self.db_path

    def generation_options(self, exclude_cards=()) -> GenerationOptions:
        types = [t for t in (normalize_question_type(q) for q in self.question_types) if t]
        return GenerationOptions(
            question_types=tuple(types) or ("choice",),
            front_sides=tuple(self.front_sides),
            back_sides=tuple(self.back_sides),
            question_type_mix=normalize_question_type(self.question_type_mix) or self.question_type_mix,
            difficulty=max(0.0, min(1.0, float(self.difficulty_weight))),
            exclude_cards=frozenset(exclude_cards),
            progressive_learning=self.progressive_learning,
            progressive_learning_spacing=max(0, int(self.progressive_learning_spacing)),
        )

    def scheduler_config(self) -> SchedulerConfig:
        # Unknown algorithms fall back to smart spacing
        algorithm = self.scheduling_algorithm
        if algorithm not in SCHEDULERS:
            algorithm = DEFAULTS["scheduling_algorithm"]
        return SchedulerConfig(
            algorithm=algorithm,
            aggressiveness=self.aggressiveness,
            min_spacing=self.min_spacing,
            max_spacing=max(self.min_spacing, self.max_spacing),
            cluster_limit=self.cluster_limit,
            progress_ratio=min(1.0, self.progress_ratio),
            difficulty_weight=min(1.0, self.review_difficulty_weight),
        )

    def to_dict(self) -> dict:
        return {
            "decks_dir": self.decks_dir,
            "db_path": self.db_path,
            "question_types": self.question_types,
            "question_type_mix": self.question_type_mix,
            "front_sides": self.front_sides,
            "back_sides": self.back_sides,
            "cards_per_round": self.cards_per_round,
            "progression_mode": self.progression_mode,
            "randomize": self.randomize,
            "mastery_threshold": self.mastery_threshold,
            "progressive_learning": self.progressive_learning,
            "progressive_learning_spacing": self.progressive_learning_spacing,
            "difficulty_weight": self.difficulty_weight,
            "scheduling_algorithm": self.scheduling_algorithm,
            "aggressiveness": self.aggressiveness,
            "min_spacing": self.min_spacing,
            "max_spacing": self.max_spacing,
            "cluster_limit": self.cluster_limit,
            "progress_ratio": self.progress_ratio,
            "review_difficulty_weight": self.review_difficulty_weight,
        }


def settings_from_dict(raw: dict) -> Settings:
    """Build Settings from a config dict, falling back to defaults for bad values."""
    raw = dict(raw)
    for old, new in _RENAMED.items():
        if old in raw:
            raw.setdefault(new, raw[old])
            del raw[old]
    known = {f.name for f in Settings.__dataclass_fields__.values()}
    filtered = {}
    for k, v in raw.items():
        if k not in known:
            continue
        try:
            filtered[k] = coerce_setting(k, v)
        except ValueError as e:
            _log.warning("Ignoring setting %s: %s", k, e)
    return Settings(**filtered)


def load_settings() -> Settings:
    if CONFIG_PATH.exists():
        return settings_from_dict(json.loads(CONFIG_PATH.read_text()))
    return Settings()


def save_settings(settings: Settings) -> None:
    CONFIG_PATH.write_text(json.dumps(settings.to_dict(), indent=4) + "\n")
