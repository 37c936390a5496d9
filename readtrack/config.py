"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""

    # Database
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "readtrack")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Catalog API
    OPENLIBRARY_URL = os.getenv("OPENLIBRARY_URL", "https://openlibrary.org")
    COVERS_URL = os.getenv("COVERS_URL", "https://covers.openlibrary.org/b/id")
    DEFAULT_LANG = os.getenv("DEFAULT_LANG", "es")

    # Defaults
    DEFAULT_TIMEOUT = int(os.getenv("DEFAULT_TIMEOUT", "10"))
    MAX_CONCURRENT = int(os.getenv("MAX_CONCURRENT", "5"))

    # Recommendations
    HOME_RECS_COUNT = int(os.getenv("HOME_RECS_COUNT", "6"))
    MAX_REFRESH_PER_DAY = int(os.getenv("MAX_REFRESH_PER_DAY", "3"))
    RECENT_RECS_WINDOW = int(os.getenv("RECENT_RECS_WINDOW", "60"))
