"""
Per-frame emotion scoring from blendshape activations.

- adjust_features: damp the user's resting-face intensity out of each action
- score_emotions: weighted sums per label, surprise/fear tie-break, derived neutral
- normalize_scores: temperature-sharpened softmax over the closed label set
"""
from __future__ import annotations
from typing import Dict, Mapping, Optional, Sequence
import logging

import numpy as np

from mood.config import DisambiguationConfig, ScoringConfig, WeightTerm
from mood.models import EmotionLabel

logger = logging.getLogger(__name__)

LABELS = tuple(EmotionLabel)


def adjust_features(
    vector: Mapping[str, float],
    baseline: Optional[Mapping[str, float]],
    damping: float = 0.8,
) -> Dict[str, float]:
    """adjusted = max(0, raw - damping * baseline), per action present in ``vector``."""
    base = baseline or {}
    return {
        name: max(0.0, float(score) - damping * float(base.get(name, 0.0)))
        for name, score in vector.items()
    }


def _reduce(adjusted: Mapping[str, float], actions: Sequence[str], how: str = "avg") -> float:
    values = [adjusted.get(a, 0.0) for a in actions]
    if how == "max":
        return max(values)
    return sum(values) / len(values)


def _weighted(adjusted: Mapping[str, float], terms: Sequence[WeightTerm]) -> float:
    return sum(t.weight * _reduce(adjusted, t.actions, t.reduce) for t in terms)


def _disambiguate(scores: Dict[EmotionLabel, float], adjusted: Mapping[str, float], rule: DisambiguationConfig) -> None:
    surprised = scores[EmotionLabel.SURPRISED]
    fear = scores[EmotionLabel.FEAR]
    if not (surprised > rule.surprised_floor and fear > rule.fear_floor):
        return

    jaw = _reduce(adjusted, rule.jaw_actions)
    stretch = _reduce(adjusted, rule.stretch_actions)
    if jaw > rule.jaw_open_min and stretch < rule.stretch_max_for_surprise:
        scores[EmotionLabel.SURPRISED] = surprised + rule.surprised_boost
        scores[EmotionLabel.FEAR] = fear - rule.fear_penalty
        logger.debug(f"[scoring] surprise/fear tie-break -> surprised (jaw={jaw:.2f} stretch={stretch:.2f})")
    elif stretch > rule.stretch_min_for_fear:
        scores[EmotionLabel.FEAR] = fear + rule.fear_boost
        scores[EmotionLabel.SURPRISED] = surprised - rule.surprised_penalty
        logger.debug(f"[scoring] surprise/fear tie-break -> fear (jaw={jaw:.2f} stretch={stretch:.2f})")


def score_emotions(
    vector: Mapping[str, float],
    baseline: Optional[Mapping[str, float]],
    config: ScoringConfig,
    damping: float = 0.8,
) -> Dict[EmotionLabel, float]:
    """
    Raw (unnormalized) score per label for one frame.

    Missing actions count as 0. Every returned score is floored at 0.
    """
    adjusted = adjust_features(vector, baseline, damping)

    scores: Dict[EmotionLabel, float] = {EmotionLabel.NEUTRAL: 0.0}
    for label, terms in config.weights.items():
        scores[label] = _weighted(adjusted, terms)

    _disambiguate(scores, adjusted, config.disambiguation)

    # neutral falls as the strongest competitor rises
    strongest = max(0.0, max(v for k, v in scores.items() if k is not EmotionLabel.NEUTRAL))
    scores[EmotionLabel.NEUTRAL] = config.neutral.base / (1.0 + config.neutral.decay * strongest)

    return {label: max(0.0, scores.get(label, 0.0)) for label in LABELS}


def normalize_scores(raw: Mapping[EmotionLabel, float], sharpness: float = 5.0) -> Dict[EmotionLabel, float]:
    """
    Softmax with sharpening: exp((v - max) * sharpness) / sum.

    Output covers every label, is non-negative and sums to 1. All-equal input
    yields the uniform distribution.
    """
    values = np.array([float(raw.get(label, 0.0)) for label in LABELS], dtype=np.float64)
    values = np.nan_to_num(values, nan=0.0)
    exps = np.exp((values - values.max()) * float(sharpness))
    probs = exps / exps.sum()
    return {label: float(p) for label, p in zip(LABELS, probs)}
