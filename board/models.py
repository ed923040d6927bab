from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, Integer, String, Text

Base = declarative_base()


class Message(Base):
    __tablename__ = "messages"
    # AUTOINCREMENT: ids are never handed out twice
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    text = Column(Text, nullable=False)
    timestamp = Column(String)  # ISO-8601 UTC, "Z" suffix

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, text={self.text!r}, timestamp={self.timestamp})>"
