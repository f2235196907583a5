from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)


class _Unavailable:
    """Sentinel cached when the model failed to load; never retried."""

    __slots__ = ("reason",)

    def __init__(self, reason: str = "") -> None:
        self.reason = reason

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"<model unavailable: {self.reason}>"


SessionLoader = Callable[[str], Any]


def load_onnx_session(model_path: str) -> Any:
    """Open the plate detector with the CPU execution provider."""
    import onnxruntime as ort

    if not os.path.isfile(model_path):
        raise FileNotFoundError(f"model artifact not found: {model_path}")
    opts = ort.SessionOptions()
    opts.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
    return ort.InferenceSession(model_path, sess_options=opts, providers=["CPUExecutionProvider"])


class ModelSessionManager:
    """
    Lazily loads one inference session and keeps it for the process lifetime.

    The first `get_session()` call loads under a lock; concurrent first calls
    wait for that single attempt. A failed load caches an unavailable marker,
    so later calls return immediately without touching the artifact again.

    onnxruntime sessions accept concurrent `run()` calls, so the cached handle
    is shared without serializing inference.
    """

    def __init__(self, model_path: str, loader: Optional[SessionLoader] = None) -> None:
        self.model_path = model_path
        self._loader = loader or load_onnx_session
        self._lock = threading.Lock()
        self._state: Any = None
        self.load_attempts = 0

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    def get_session(self) -> Union[Any, _Unavailable]:
        state = self._state
        if state is not None:
            return state
        with self._lock:
            if self._state is None:
                self._state = self._load()
            return self._state

    def _load(self) -> Any:
        self.load_attempts += 1
        logger.info("Loading plate detection model from %s", self.model_path)
        try:
            session = self._loader(self.model_path)
        except Exception as e:
            logger.error(
                "Plate detection model failed to load; local detection disabled for this process: %s",
                e,
                extra={"event": "model_load_failed", "model_path": self.model_path},
            )
            return _Unavailable(str(e))
        if session is None:
            logger.error(
                "Plate detection model loader returned nothing; local detection disabled for this process",
                extra={"event": "model_load_failed", "model_path": self.model_path},
            )
            return _Unavailable("loader returned None")
        logger.info("Plate detection model loaded", extra={"event": "model_loaded", "model_path": self.model_path})
        return session


def is_available(session: Any) -> bool:
    return session is not None and not isinstance(session, _Unavailable)


_MANAGERS: dict = {}
_MANAGERS_LOCK = threading.Lock()


def get_session_manager(model_path: str) -> ModelSessionManager:
    """Process-wide manager per model path."""
    path = os.path.abspath(model_path)
    with _MANAGERS_LOCK:
        manager = _MANAGERS.get(path)
        if manager is None:
            manager = ModelSessionManager(path)
            _MANAGERS[path] = manager
        return manager
