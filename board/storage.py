import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import create_engine, event, func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .errors import InvalidInput, StoreUnavailable
from .logging_utils import iso_now
from .models import Base, Message


logger = logging.getLogger("board.storage")

SEED_TEXTS = ("Hello, SQLite!", "これが最初のメッセージです。")

# same set JavaScript String.prototype.trim() removes
TRIM_CHARS = (
    "\t\n\v\f\r \u00a0\u1680"
    "\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a"
    "\u2028\u2029\u202f\u205f\u3000\ufeff"
)


def _engine_connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def create_store_engine(url: str) -> Engine:
    """
    Build the engine whose pool hands out connections to every store call.
    SQLite connections get WAL journaling and a busy timeout so concurrent
    writers queue on the file lock instead of failing straight away.
    """
    eng = create_engine(url, connect_args=_engine_connect_args(url))

    if url.startswith("sqlite"):

        @event.listens_for(eng, "connect")
        def _sqlite_pragmas(dbapi_conn, _record) -> None:
            cursor = dbapi_conn.cursor()
            try:
                cursor.execute(f"PRAGMA busy_timeout={settings.DB_BUSY_TIMEOUT_MS}")
                if ":memory:" not in url:
                    cursor.execute("PRAGMA journal_mode=WAL")
            finally:
                cursor.close()

    return eng


def make_sessionmaker(bind: Engine) -> sessionmaker:
    # keep attributes loaded after commit; the created row is echoed back as-is
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False)


engine = create_store_engine(settings.DATABASE_URL)

SessionLocal = make_sessionmaker(engine)


def init_db(bind: Optional[Engine] = None) -> None:
    try:
        Base.metadata.create_all(bind=bind or engine)
    except SQLAlchemyError as exc:
        logger.error("could not create messages table: %s", exc)
        raise StoreUnavailable("could not initialise database") from exc


def _release(db: Session) -> None:
    # a failed close must not replace the outcome the caller already has
    try:
        db.close()
    except SQLAlchemyError as exc:
        logger.warning("failed to release database session: %s", exc)


def get_db() -> Iterable[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        _release(db)


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    db = (factory or SessionLocal)()
    try:
        yield db
    finally:
        _release(db)


def list_messages(db: Session) -> List[Message]:
    """Every stored message, oldest first (id ascending)."""
    try:
        return db.query(Message).order_by(Message.id.asc()).all()
    except SQLAlchemyError as exc:
        logger.error("list_messages failed: %s", exc)
        raise StoreUnavailable("failed to read messages") from exc


def normalize_text(raw_text: object) -> str:
    if not isinstance(raw_text, str):
        raise InvalidInput("message text must be a string")
    text = raw_text.strip(TRIM_CHARS)
    if not text:
        raise InvalidInput("message text must not be blank")
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as exc:
        # lone surrogates survive JSON decoding but cannot be stored
        raise InvalidInput("message text is not valid unicode") from exc
    return text


def append_message(db: Session, raw_text: object, *, now: Optional[str] = None) -> Message:
    """
    Store one message and return it with the id the database assigned.

    Text is validated before the session is touched. Any database failure
    rolls the transaction back and surfaces as StoreUnavailable.
    """
    text = normalize_text(raw_text)
    msg = Message(text=text, timestamp=now or iso_now())
    try:
        db.add(msg)
        db.commit()
    except SQLAlchemyError as exc:
        logger.error("append_message failed: %s", exc)
        try:
            db.rollback()
        except SQLAlchemyError as rollback_exc:
            logger.warning("rollback after failed append also failed: %s", rollback_exc)
        raise StoreUnavailable("failed to store message") from exc
    return msg


def count_messages(db: Session) -> int:
    try:
        return int(db.query(func.count(Message.id)).scalar() or 0)
    except SQLAlchemyError as exc:
        logger.error("count_messages failed: %s", exc)
        raise StoreUnavailable("failed to count messages") from exc


def get_stats(db: Session) -> dict:
    try:
        total_messages = db.query(func.count(Message.id)).scalar() or 0
        first_ts = db.query(func.min(Message.timestamp)).scalar()
        last_ts = db.query(func.max(Message.timestamp)).scalar()
    except SQLAlchemyError as exc:
        logger.error("get_stats failed: %s", exc)
        raise StoreUnavailable("failed to read stats") from exc

    return {
        "total_messages": int(total_messages),
        "first_message_ts": first_ts,
        "last_message_ts": last_ts,
    }


def seed_messages(db: Session) -> List[Message]:
    """Insert the two starter messages, but only into an empty table."""
    if count_messages(db) > 0:
        return []
    return [append_message(db, text) for text in SEED_TEXTS]
