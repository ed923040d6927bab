import os

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from fastapi import (
    FastAPI,
    Depends,
    HTTPException,
    Request,
    status,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, StrictStr

from sqlalchemy.orm import Session

from .config import settings
from .errors import InvalidInput, StoreUnavailable
from .storage import init_db, get_db, append_message, list_messages, get_stats
from .logging_utils import logging_middleware
from .metrics import inc_append_result, render_metrics


MESSAGES_PATH = "/api/messages"

INVALID_TEXT_ERROR = "Message text is required and must be a non-empty string."
STORE_ERRORS = {
    "GET": "Failed to retrieve messages from database.",
    "POST": "Failed to create message in database.",
}


app = FastAPI(title="Message Board")

app.middleware("http")(logging_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Pydantic Models ----------


class MessageCreate(BaseModel):
    # blank text is rejected by the store itself, after trimming
    text: StrictStr


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    text: str
    timestamp: str


# ---------- Startup ----------


@app.on_event("startup")
def on_startup() -> None:
    init_db()


# ---------- Helpers ----------


def is_ready(db: Session) -> tuple[bool, str]:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return False, f"DB error: {e}"
    return True, "ok"


def _log_extra(request: Request) -> dict:
    extra = getattr(request.state, "log_extra", None)
    if extra is None:
        extra = request.state.log_extra = {}
    return extra


def _invalid_text(request: Request) -> JSONResponse:
    if request.method == "POST" and request.url.path == MESSAGES_PATH:
        inc_append_result("invalid_input")
        _log_extra(request).update({"result": "invalid_input"})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": INVALID_TEXT_ERROR},
    )


# ---------- Exception handlers ----------


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # missing body, malformed JSON, missing or non-string text
    if request.url.path == MESSAGES_PATH:
        return _invalid_text(request)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()},
    )


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return _invalid_text(request)


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    if request.method == "POST" and request.url.path == MESSAGES_PATH:
        inc_append_result("store_unavailable")
    _log_extra(request).update({"result": "store_unavailable", "error": str(exc)})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": STORE_ERRORS.get(request.method, "Database error.")},
    )


# ---------- Endpoints ----------


@app.get("/health/live")
def health_live():
    return {"status": "ok"}


@app.get("/health/ready")
def health_ready(db: Session = Depends(get_db)):
    ok, msg = is_ready(db)
    if not ok:
        raise HTTPException(status_code=503, detail=msg)
    return {"status": "ok"}


@app.get(MESSAGES_PATH, response_model=list[MessageOut])
def get_messages(db: Session = Depends(get_db)):
    rows = list_messages(db)
    return [MessageOut.model_validate(m) for m in rows]


@app.post(MESSAGES_PATH, response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def create_message(
    payload: MessageCreate,
    request: Request,
    db: Session = Depends(get_db),
):
    message = append_message(db, payload.text)

    inc_append_result("created")
    _log_extra(request).update({"message_id": message.id, "result": "created"})

    return MessageOut.model_validate(message)


@app.get("/stats")
def stats(db: Session = Depends(get_db)):
    return get_stats(db)


@app.get("/metrics")
def metrics():
    body = render_metrics()
    return PlainTextResponse(content=body, media_type="text/plain")


def mount_client(target: FastAPI, directory: str) -> bool:
    """Serve a browser client from `directory` at "/"; no-op when unset or missing."""
    if not directory or not os.path.isdir(directory):
        return False
    target.mount("/", StaticFiles(directory=directory, html=True), name="static")
    return True


# registered last so the API routes above take precedence over "/"
mount_client(app, settings.STATIC_DIR)
