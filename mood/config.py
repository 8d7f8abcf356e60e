"""
Configuration for the mood classifier.
"""
from __future__ import annotations
from typing import Dict, List, Literal, Tuple
import json
import logging
import os

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mood.models import BLENDSHAPE_NAMES, EmotionLabel

logger = logging.getLogger(__name__)

_VOCABULARY = frozenset(BLENDSHAPE_NAMES)


def _check_actions(names: Tuple[str, ...]) -> Tuple[str, ...]:
    unknown = [n for n in names if n not in _VOCABULARY]
    if unknown:
        raise ValueError(f"unknown facial action(s): {', '.join(unknown)}")
    return names


class WeightTerm(BaseModel):
    """One weighted contribution: ``weight * reduce(actions)``."""
    actions: Tuple[str, ...] = Field(min_length=1)
    weight: float
    reduce: Literal["max", "avg"] = "avg"

    check_actions = field_validator("actions")(_check_actions)


def _term(weight: float, *actions: str, reduce: str = "avg") -> WeightTerm:
    return WeightTerm(actions=actions, weight=weight, reduce=reduce)


def default_weights() -> Dict[EmotionLabel, List[WeightTerm]]:
    return {
        # Duchenne smile: mouth corners plus cheek raise
        EmotionLabel.HAPPY: [
            _term(0.9, "mouthSmileLeft", "mouthSmileRight", reduce="max"),
            _term(0.4, "cheekSquintLeft", "cheekSquintRight"),
            _term(0.2, "mouthDimpleLeft", "mouthDimpleRight"),
            _term(-0.1, "mouthStretchLeft", "mouthStretchRight"),
        ],
        EmotionLabel.SAD: [
            _term(0.7, "mouthFrownLeft", "mouthFrownRight", reduce="max"),
            _term(0.6, "browInnerUp"),
            _term(0.3, "browDownLeft", "browDownRight"),
            _term(0.4, "mouthShrugLower", "mouthShrugUpper"),
            _term(0.3, "mouthLowerDownLeft", "mouthLowerDownRight", reduce="max"),
            _term(0.1, "eyeSquintLeft", "eyeSquintRight"),
        ],
        EmotionLabel.ANGRY: [
            _term(1.0, "browDownLeft", "browDownRight"),
            _term(0.3, "eyeSquintLeft", "eyeSquintRight"),
            _term(0.5, "mouthPressLeft", "mouthPressRight"),
            _term(0.5, "noseSneerLeft", "noseSneerRight"),
            _term(0.3, "mouthPucker"),
            _term(0.1, "eyeLookDownLeft", "eyeLookDownRight"),
        ],
        EmotionLabel.SURPRISED: [
            _term(0.8, "eyeWideLeft", "eyeWideRight"),
            _term(0.5, "browInnerUp", "browOuterUpLeft", "browOuterUpRight"),
            _term(0.6, "jawOpen"),
        ],
        EmotionLabel.FEAR: [
            _term(0.6, "eyeWideLeft", "eyeWideRight"),
            _term(0.5, "browInnerUp"),
            _term(0.7, "mouthStretchLeft", "mouthStretchRight"),
        ],
    }


class NeutralConfig(BaseModel):
    """neutral = base / (1 + decay * strongest competing score)"""
    base: float = Field(0.5, ge=0.0)
    decay: float = Field(2.0, ge=0.0)


class DisambiguationConfig(BaseModel):
    """Surprise vs. fear tie-break, driven by jaw opening and mouth stretch."""
    surprised_floor: float = 0.3
    fear_floor: float = 0.2
    jaw_actions: Tuple[str, ...] = Field(("jawOpen",), min_length=1)
    stretch_actions: Tuple[str, ...] = Field(("mouthStretchLeft", "mouthStretchRight"), min_length=1)
    jaw_open_min: float = 0.3
    stretch_max_for_surprise: float = 0.2
    stretch_min_for_fear: float = 0.3
    surprised_boost: float = 0.2
    fear_penalty: float = 0.1
    fear_boost: float = 0.25
    surprised_penalty: float = 0.15

    check_actions = field_validator("jaw_actions", "stretch_actions")(_check_actions)


class ScoringConfig(BaseModel):
    weights: Dict[EmotionLabel, List[WeightTerm]] = Field(default_factory=default_weights)
    neutral: NeutralConfig = Field(default_factory=NeutralConfig)
    disambiguation: DisambiguationConfig = Field(default_factory=DisambiguationConfig)

    @model_validator(mode="after")
    def check_complete_table(self) -> "ScoringConfig":
        if EmotionLabel.NEUTRAL in self.weights:
            raise ValueError("neutral is derived from competing scores and takes no weights")
        missing = [e.value for e in EmotionLabel if e is not EmotionLabel.NEUTRAL and e not in self.weights]
        if missing:
            raise ValueError(f"weight table missing label(s): {', '.join(missing)}")
        return self


def load_scoring_config(path: str | None = None) -> ScoringConfig:
    """Read a weight table from JSON, or return the built-in defaults."""
    if not path:
        return ScoringConfig()
    if not os.path.exists(path):
        raise FileNotFoundError(f"Weights file not found: {path}")
    logger.debug(f"[config] loading scoring weights from {path}")
    with open(path, "r", encoding="utf-8") as f:
        return ScoringConfig.model_validate(json.load(f))


class Settings(BaseModel):
    """
    Runtime settings with environment-variable overrides.
    """
    model_config = ConfigDict(validate_default=True)

    CALIBRATION_FRAMES: int = Field(int(os.getenv("CALIBRATION_FRAMES", "10")), ge=1)
    BASELINE_DAMPING: float = Field(float(os.getenv("BASELINE_DAMPING", "0.8")), ge=0.0, le=1.0)
    SOFTMAX_SHARPNESS: float = Field(float(os.getenv("SOFTMAX_SHARPNESS", "5.0")), gt=0.0)
    SMOOTHING_BETA: float = Field(float(os.getenv("SMOOTHING_BETA", "0.7")), gt=0.0, le=1.0)
    SWITCH_RATIO: float = Field(float(os.getenv("SWITCH_RATIO", "1.15")), ge=1.0)
    SWITCH_DELTA: float = Field(float(os.getenv("SWITCH_DELTA", "0.15")), ge=0.0)
    PLACEHOLDER_CONFIDENCE: float = Field(float(os.getenv("PLACEHOLDER_CONFIDENCE", "0.35")), gt=0.0, le=1.0)

    INIT_TIMEOUT: float = Field(float(os.getenv("INIT_TIMEOUT", "15")), gt=0.0)
    LANDMARK_MODEL_PATH: str = os.getenv("LANDMARK_MODEL_PATH", "models/face_landmarker.task")
    LANDMARK_DELEGATE: str = (os.getenv("LANDMARK_DELEGATE", "cpu") or "cpu")

    READINGS_BATCH_SIZE: int = Field(int(os.getenv("READINGS_BATCH_SIZE", "10")), ge=1)
    NO_FACE_ALERT_FRAMES: int = Field(int(os.getenv("NO_FACE_ALERT_FRAMES", "5")), ge=1)

    MAX_SESSIONS: int = Field(int(os.getenv("MAX_SESSIONS", "100")), ge=1)
    SESSION_IDLE_SECONDS: float = Field(float(os.getenv("SESSION_IDLE_SECONDS", "600")), gt=0.0)

    WEIGHTS_FILE: str | None = os.getenv("WEIGHTS_FILE") or None
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def __init__(self, **data):
        super().__init__(**data)
        # Normalize LANDMARK_DELEGATE: strip extra words, lower-case, validate
        parts = (self.LANDMARK_DELEGATE or "cpu").strip().split()
        delegate = parts[0].lower() if parts else "cpu"
        if delegate not in ("cpu", "gpu"):
            delegate = "cpu"
        object.__setattr__(self, "LANDMARK_DELEGATE", delegate)

    def scoring(self) -> ScoringConfig:
        return load_scoring_config(self.WEIGHTS_FILE)
