"""Request IDs and stage-tagged logging."""
import json
import logging
import random
import string
import time
from typing import Any, Optional

from fastapi import Request

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_request_id() -> str:
    """Generate a short request ID like ``req_1718000000000_k3j9x0a1b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def get_request_id(request: Request) -> str:
    """Request ID assigned by the middleware, or a fresh one."""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = generate_request_id()
        request.state.request_id = request_id
    return request_id


class StageLogger(logging.LoggerAdapter):
    """
    Logger that prefixes every line with ``[function][request_id]``.

    ``checkpoint`` also remembers the last stage reached so fatal errors can
    report where the pipeline stopped.
    """

    def __init__(self, logger: logging.Logger, function: str, request_id: str):
        super().__init__(logger, {"function": function, "request_id": request_id})
        self.function = function
        self.request_id = request_id
        self.current_stage = "init"

    def process(self, msg, kwargs):
        return f"[{self.function}][{self.request_id}]{msg}", kwargs

    def stage(self, stage: str, detail: Any = None, level: int = logging.INFO) -> None:
        """Log a stage event with an optional JSON detail payload."""
        payload = _to_json(detail if detail is not None else "checkpoint")
        self.log(level, f"[{stage}] {payload}")

    def checkpoint(self, stage: str, detail: Optional[Any] = None) -> None:
        self.current_stage = stage
        self.stage(stage, detail)


def _to_json(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)
