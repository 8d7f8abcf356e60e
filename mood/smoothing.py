"""
Temporal smoothing and sticky label selection across frames.
"""
from __future__ import annotations
from typing import Dict, Mapping, Optional
import logging

from mood.models import EmotionLabel

logger = logging.getLogger(__name__)


class ScoreSmoother:
    """
    Per-label exponential moving average over normalized scores.

    ``beta`` is the weight of the newest frame. The first frame after
    construction or ``reset`` is taken as-is.
    """
    def __init__(self, beta: float = 0.7):
        self.beta = float(beta)
        self.state: Optional[Dict[EmotionLabel, float]] = None

    def update(self, scores: Mapping[EmotionLabel, float]) -> Dict[EmotionLabel, float]:
        current = {label: float(scores.get(label, 0.0)) for label in EmotionLabel}
        if self.state is not None:
            b = self.beta
            current = {label: b * v + (1.0 - b) * self.state[label] for label, v in current.items()}
        self.state = current
        return dict(current)

    def reset(self) -> None:
        self.state = None


def select_dominant(
    smoothed: Mapping[EmotionLabel, float],
    previous: EmotionLabel,
    ratio: float = 1.15,
    delta: float = 0.15,
) -> EmotionLabel:
    """
    Hysteresis rule: leave ``previous`` only for a label whose smoothed score
    beats it by ``ratio`` (multiplicative) or ``delta`` (additive). Among the
    labels that clear the margin the highest score wins.
    """
    held = float(smoothed.get(previous, 0.0))
    best, best_score = previous, held
    for label in EmotionLabel:
        if label is previous:
            continue
        score = float(smoothed.get(label, 0.0))
        if (score > held * ratio or score > held + delta) and score > best_score:
            best, best_score = label, score
    return best


class DominantLabelSelector:
    """Holds the currently reported label; switches only past the hysteresis margin."""
    def __init__(self, ratio: float = 1.15, delta: float = 0.15,
                 initial: EmotionLabel = EmotionLabel.NEUTRAL):
        self.ratio = float(ratio)
        self.delta = float(delta)
        self.current = initial

    def select(self, smoothed: Mapping[EmotionLabel, float]) -> EmotionLabel:
        label = select_dominant(smoothed, self.current, self.ratio, self.delta)
        if label is not self.current:
            logger.debug(f"[smoothing] dominant {self.current.value} -> {label.value} "
                         f"({smoothed.get(self.current, 0.0):.3f} -> {smoothed.get(label, 0.0):.3f})")
        self.current = label
        return label
