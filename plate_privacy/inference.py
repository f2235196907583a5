from __future__ import annotations

import logging
import time
from typing import Any

import numpy as np

from .errors import InferenceError, ModelUnavailable
from .model_session import is_available

logger = logging.getLogger(__name__)


def run_inference(session: Any, tensor: np.ndarray) -> np.ndarray:
    """Feed one prepared tensor to the session and return its first output."""
    if not is_available(session):
        raise ModelUnavailable(f"model session unavailable ({session!r})")

    try:
        input_name = session.get_inputs()[0].name
        t0 = time.perf_counter()
        outputs = session.run(None, {input_name: tensor})
        dt_ms = int((time.perf_counter() - t0) * 1000)
    except Exception as e:
        raise InferenceError(f"inference call failed: {e}") from e

    if not outputs:
        raise InferenceError("inference returned no outputs")
    logger.debug("Plate model inference took %d ms", dt_ms, extra={"event": "inference", "duration_ms": dt_ms})
    return np.asarray(outputs[0])
