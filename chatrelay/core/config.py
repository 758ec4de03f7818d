# chatrelay/core/config.py
import os

from dotenv import load_dotenv

VERSION = "1.2.0"


class Settings:
    """
    Setup environment variables.
        - HOST / PORT where uvicorn listens
        - ADMIN_TOKEN shared secret for the administrative REST endpoints
          (empty means admin endpoints are open, trusted LAN only)
        - DEFAULT_ROOM_ID / DEFAULT_ROOM_NAME the immortal lobby room
        - HISTORY_LIMIT messages replayed to a joining connection
        - HISTORY_RETENTION messages kept in memory per room
    """

    # Load environment variables from the .env file
    load_dotenv()

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3001"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    ADMIN_TOKEN: str = os.getenv("ADMIN_TOKEN", "")
    CORS_ORIGINS: list[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    DEFAULT_ROOM_ID: str = os.getenv("DEFAULT_ROOM_ID", "default")
    DEFAULT_ROOM_NAME: str = os.getenv("DEFAULT_ROOM_NAME", "Public Chat")

    HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "50"))
    HISTORY_RETENTION: int = int(os.getenv("HISTORY_RETENTION", "200"))

settings = Settings()
