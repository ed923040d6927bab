import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response

from .config import settings
from .metrics import inc_http_request, observe_latency_ms


logger = logging.getLogger("board")
logger.setLevel(settings.LOG_LEVEL)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setLevel(settings.LOG_LEVEL)
    logger.addHandler(handler)


def iso_now() -> str:
    # fixed-width millisecond precision keeps string order equal to time order
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")


def _log_line(request: Request, request_id: str, level: str, status: int, latency_ms: float) -> dict:
    return {
        "ts": iso_now(),
        "level": level,
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "status": status,
        "latency_ms": round(latency_ms, 2),
    }


async def logging_middleware(request: Request, call_next: Callable) -> Response:
    request_id = str(uuid.uuid4())
    start = time.perf_counter()

    # handlers add fields (result, message_id) through log_extra
    request.state.request_id = request_id
    request.state.log_extra = {}

    response: Response
    try:
        response = await call_next(request)
    except Exception:
        latency_ms = (time.perf_counter() - start) * 1000.0
        inc_http_request(request.url.path, 500)
        observe_latency_ms(latency_ms)
        logger.error(json.dumps(_log_line(request, request_id, "error", 500, latency_ms)))
        raise

    latency_ms = (time.perf_counter() - start) * 1000.0
    status_code = response.status_code

    inc_http_request(request.url.path, status_code)
    observe_latency_ms(latency_ms)

    log = _log_line(
        request,
        request_id,
        "error" if status_code >= 500 else "info",
        status_code,
        latency_ms,
    )
    if isinstance(getattr(request.state, "log_extra", None), dict):
        log.update(request.state.log_extra)

    if status_code >= 500:
        logger.error(json.dumps(log, ensure_ascii=False))
    else:
        logger.info(json.dumps(log, ensure_ascii=False))
    return response
