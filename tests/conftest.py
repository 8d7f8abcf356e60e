import asyncio
import pytest

from mood.classifier import EmotionClassifier
from mood.config import Settings


def frame(**scores):
    """Build one frame's ordered [{name, score}] list, as the landmark service sends it."""
    return [{"name": k, "score": v} for k, v in scores.items()]


# a relaxed face: tiny activations everywhere that matters
RESTING = frame(mouthSmileLeft=0.02, browDownLeft=0.03, eyeSquintLeft=0.05, jawOpen=0.02)


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def classifier(settings):
    clf = EmotionClassifier(settings)
    assert asyncio.run(clf.initialize()).ok
    yield clf
    clf.dispose()


@pytest.fixture
def calibrated(classifier, settings):
    for _ in range(settings.CALIBRATION_FRAMES):
        classifier.classify(RESTING)
    assert classifier.calibrated
    return classifier
