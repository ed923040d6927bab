"""Create the messages table and seed it with two starter messages when empty."""
import logging

from .config import settings
from .storage import init_db, seed_messages, session_scope


logger = logging.getLogger("board.setup_db")


def main() -> None:
    init_db()
    logger.info("messages table ready at %s", settings.DATABASE_URL)

    with session_scope() as db:
        created = seed_messages(db)

    if created:
        logger.info("inserted %d starter messages", len(created))
    else:
        logger.info("messages table already has rows, nothing seeded")


if __name__ == "__main__":
    main()
