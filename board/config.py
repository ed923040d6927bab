import os


class Settings:
    def __init__(self) -> None:
        self.DB_PATH: str = os.getenv("DB_PATH", "chat.db")
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{self.DB_PATH}")
        self.DB_BUSY_TIMEOUT_MS: int = int(os.getenv("DB_BUSY_TIMEOUT_MS", "5000"))
        self.HOST: str = os.getenv("HOST", "0.0.0.0")
        self.PORT: int = int(os.getenv("PORT", "3000"))
        self.STATIC_DIR: str = os.getenv("STATIC_DIR", "")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
