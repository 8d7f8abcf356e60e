"""
REST endpoints for detection sessions.
"""
from typing import Dict, List
import logging
import time

import cv2
import numpy as np
from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from mood.config import Settings
from mood.landmarks import MediaPipeLandmarker
from mood.models import FeatureScore, SessionUpdate
from mood.session import DetectionSession

router = APIRouter()
settings = Settings()
sessions: Dict[str, DetectionSession] = {}
logger = logging.getLogger(__name__)


def _get(session_id: str) -> DetectionSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


def _payload(update: SessionUpdate) -> JSONResponse:
    return JSONResponse(update.model_dump(mode="json", by_alias=True))


def _expire_idle() -> None:
    """Dispose sessions that have not classified a frame for SESSION_IDLE_SECONDS."""
    cutoff = time.monotonic() - settings.SESSION_IDLE_SECONDS
    for sid in [sid for sid, s in sessions.items() if s.last_active < cutoff]:
        sessions.pop(sid).dispose()
        logger.info(f"[api] session expired id={sid}")


@router.post("/sessions")
async def create_session(with_landmarks: bool = False):
    """
    Start a detection session (one per camera activation).

    Args:
        with_landmarks: attach the MediaPipe landmark service so raw frames can
            be posted to /frame. Without it, clients post precomputed features.

    Returns:
        dict: session id plus its initial status.
    """
    _expire_idle()
    if len(sessions) >= settings.MAX_SESSIONS:
        raise HTTPException(status_code=503, detail=f"Session limit reached ({settings.MAX_SESSIONS}); delete an idle session first")
    landmarks = MediaPipeLandmarker(settings) if with_landmarks else None
    session = DetectionSession(settings, landmarks=landmarks)
    res = await session.start()
    if not res.ok:
        session.dispose()
        logger.warning(f"[api] session init failed: {res.error}")
        raise HTTPException(status_code=503, detail=res.error)
    sessions[session.id] = session
    logger.debug(f"[api] session created id={session.id} with_landmarks={with_landmarks}")
    return {"session_id": session.id, "status": session.status().model_dump(mode="json")}


@router.get("/sessions/{session_id}")
async def session_status(session_id: str):
    return _get(session_id).status().model_dump(mode="json")


@router.post("/sessions/{session_id}/features")
async def post_features(session_id: str, features: List[FeatureScore]):
    """
    Classify one frame of precomputed blendshape scores.

    An empty list means no face was detected in that frame.
    """
    session = _get(session_id)
    return _payload(session.process_features(features))


@router.post("/sessions/{session_id}/frame")
async def post_frame(session_id: str, file: UploadFile = File(...)):
    """
    Classify one encoded image (JPEG/PNG) through the session's landmark service.
    """
    session = _get(session_id)
    if not session.classifier.has_landmarks:
        raise HTTPException(status_code=409, detail="Session has no landmark service; post features instead")

    data = await file.read()
    frame = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR) if data else None
    if frame is None:
        raise HTTPException(status_code=400, detail=f"Could not decode image: {file.filename}")

    try:
        update = await session.process_frame(frame)
    except Exception as e:
        logger.exception("[api] frame classification failed")
        raise HTTPException(status_code=500, detail=str(e))
    return _payload(update)


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    session = sessions.pop(session_id, None)
    if session is None:
        return {"status": "not_found"}
    session.dispose()
    return {"status": "disposed"}
