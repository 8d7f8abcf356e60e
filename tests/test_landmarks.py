import sys
import threading
import types

import numpy as np
import pytest

from mood.config import Settings
from mood.landmarks import MediaPipeLandmarker, to_feature_vector
from mood.models import FeatureScore


class Category:
    def __init__(self, name, score):
        self.category_name = name
        self.score = score


class FakeLandmarker:
    def __init__(self, blendshapes):
        self.blendshapes = blendshapes
        self.timestamps = []
        self.closed = False

    def detect_for_video(self, image, ts):
        self.timestamps.append(ts)
        return types.SimpleNamespace(face_blendshapes=self.blendshapes)

    def close(self):
        self.closed = True


class FakeBaseOptions:
    class Delegate:
        CPU = "CPU"
        GPU = "GPU"

    def __init__(self, **kw):
        self.kw = kw


def _fake_mediapipe(landmarker, seen):
    def create(options):
        seen["options"] = options
        return landmarker
    vision = types.SimpleNamespace(
        FaceLandmarkerOptions=lambda **kw: kw,
        RunningMode=types.SimpleNamespace(VIDEO="VIDEO"),
        FaceLandmarker=types.SimpleNamespace(create_from_options=create),
    )
    return types.SimpleNamespace(
        tasks=types.SimpleNamespace(BaseOptions=FakeBaseOptions, vision=vision),
        Image=lambda image_format, data: data,
        ImageFormat=types.SimpleNamespace(SRGB="SRGB"),
    )


FRAME = np.zeros((16, 16, 3), dtype=np.uint8)


def test_to_feature_vector_shapes():
    assert to_feature_vector(None) == {}
    assert to_feature_vector([]) == {}
    pairs = [
        {"name": "jawOpen", "score": 0.4},
        {"categoryName": "eyeWideLeft", "score": 1.3},
        FeatureScore(name="browInnerUp", score=-0.2),
        Category("mouthPucker", 0.25),
        ("cheekPuff", 0.1),
        {"name": "_neutral", "score": 0.9},
        {"name": "mouthClose", "score": None},
        {"name": "jawOpen", "score": 0.5},
    ]
    assert to_feature_vector(pairs) == {
        "jawOpen": 0.5, "eyeWideLeft": 1.0, "browInnerUp": 0.0, "mouthPucker": 0.25, "cheekPuff": 0.1,
    }
    assert to_feature_vector({"jawOpen": "0.3", "eyeWideLeft": float("nan")}) == {"jawOpen": 0.3}


def test_mediapipe_landmarker(monkeypatch):
    fake = FakeLandmarker([[Category("_neutral", 0.8), Category("jawOpen", 0.4), Category("eyeWideLeft", 0.2)]])
    seen = {}
    monkeypatch.setitem(sys.modules, "mediapipe", _fake_mediapipe(fake, seen))

    svc = MediaPipeLandmarker(Settings(LANDMARK_DELEGATE="gpu", LANDMARK_MODEL_PATH="m.task"))
    with pytest.raises(RuntimeError):
        svc.detect(FRAME)
    svc.initialize()
    svc.initialize()  # second call is a no-op
    opts = seen["options"]
    assert opts["output_face_blendshapes"] and opts["num_faces"] == 1
    assert opts["base_options"].kw == {"model_asset_path": "m.task", "delegate": "GPU"}

    out = svc.detect(FRAME, timestamp_ms=100)
    assert out == [{"name": "jawOpen", "score": 0.4}, {"name": "eyeWideLeft", "score": 0.2}]
    svc.detect(FRAME, timestamp_ms=100)
    svc.detect(FRAME, timestamp_ms=50)
    assert fake.timestamps == [100, 101, 102]  # strictly increasing for VIDEO mode

    svc.close()
    svc.close()
    assert fake.closed
    with pytest.raises(RuntimeError):
        svc.detect(FRAME)
    with pytest.raises(RuntimeError):
        svc.initialize()


def test_mediapipe_no_face(monkeypatch):
    monkeypatch.setitem(sys.modules, "mediapipe", _fake_mediapipe(FakeLandmarker([]), {}))
    svc = MediaPipeLandmarker(Settings())
    svc.initialize()
    assert svc.detect(FRAME) == []


class BlockingLandmarker(FakeLandmarker):
    def __init__(self):
        super().__init__([[Category("jawOpen", 0.4)]])
        self.entered = threading.Event()
        self.release = threading.Event()

    def detect_for_video(self, image, ts):
        self.entered.set()
        assert self.release.wait(5)
        return super().detect_for_video(image, ts)


def test_close_does_not_wait_for_running_detect(monkeypatch):
    fake = BlockingLandmarker()
    monkeypatch.setitem(sys.modules, "mediapipe", _fake_mediapipe(fake, {}))
    svc = MediaPipeLandmarker(Settings())
    svc.initialize()

    out = {}
    worker = threading.Thread(target=lambda: out.setdefault("features", svc.detect(FRAME)))
    worker.start()
    assert fake.entered.wait(5)

    closer = threading.Thread(target=svc.close)
    closer.start()
    closer.join(1)
    assert not closer.is_alive()  # returned while detect still holds the model
    assert not fake.closed

    fake.release.set()
    worker.join(5)
    assert out["features"] == [{"name": "jawOpen", "score": 0.4}]
    assert fake.closed  # released by the detect call on its way out
    with pytest.raises(RuntimeError):
        svc.detect(FRAME)
