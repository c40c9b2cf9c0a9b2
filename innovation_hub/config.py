from pathlib import Path
import os

BASE_DIR = Path(__file__).resolve().parent.parent

DATABASE_URL = os.getenv("HUB_DATABASE_URL") or f"sqlite:///{BASE_DIR / 'hub.db'}"
DATA_DIR = Path(os.getenv("HUB_DATA_DIR") or str(BASE_DIR / "data"))
STORAGE_DIR = DATA_DIR / "private"

SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

PAGE_SIZE = int(os.getenv("HUB_PAGE_SIZE", "12"))
ENABLE_VIRUS_SCAN = os.getenv("HUB_ENABLE_VIRUS_SCAN", "").lower() in {"1", "true", "yes", "on"}
LOG_LEVEL = os.getenv("HUB_LOG_LEVEL", "INFO").upper()
