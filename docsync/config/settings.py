from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field

load_dotenv()


class Settings(BaseSettings):
    """Base settings for the application."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "DocSync"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Keeps a vector index in sync with a Google Drive folder tree"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # State persistence (key/value table)
    DATABASE_URL: str = ""
    LOCAL_SQLITE_PATH: str = "sqlite+aiosqlite:///./docsync.db"

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """Resolve the database URL used for sync state.

        Priority:
        1. Explicit DATABASE_URL (Postgres, SQLite, etc.)
        2. Local SQLite fallback: LOCAL_SQLITE_PATH
        """
        if self.DATABASE_URL and self.DATABASE_URL.strip():
            return self.DATABASE_URL.strip()
        if self.LOCAL_SQLITE_PATH and self.LOCAL_SQLITE_PATH.strip():
            return self.LOCAL_SQLITE_PATH.strip()
        return "sqlite+aiosqlite:///./docsync.db"

    # Google Drive source
    DRIVE_ROOT_FOLDER_ID: str = ""
    DRIVE_ACCESS_TOKEN: str = Field(default="", description="OAuth2 bearer token for the Drive v3 API")
    DRIVE_API_BASE_URL: str = "https://www.googleapis.com/drive/v3"
    DRIVE_PAGE_SIZE: int = 100
    DRIVE_MAX_PARENT_DEPTH: int = 20
    DRIVE_SUPPORTED_EXTENSIONS: list[str] = [".md", ".markdown", ".txt"]
    DRIVE_SUPPORTED_MIME_TYPES: list[str] = ["text/markdown", "text/plain"]

    # OpenAI embedding settings
    OPENAI_API_KEY: str = ""
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    OPENAI_EMBEDDING_DIMENSIONS: int = 1536
    OPENAI_REQUESTS_PER_MINUTE: int = 5000

    # Vector store settings
    VECTOR_STORE_BACKEND: str = Field(default="pinecone", description="'qdrant' or 'pinecone'")

    QDRANT_URL: str = "http://localhost:6333"
    QDRANT_API_KEY: str = ""
    QDRANT_COLLECTION_NAME: str = "docsync"

    PINECONE_API_KEY: str = ""
    PINECONE_INDEX_NAME: str = "docsync"
    PINECONE_NAMESPACE: str = "docsync"

    # Sync tuning
    CHUNK_SIZE: int = 2000
    CHUNK_OVERLAP: int = 0
    MAX_BATCH_SIZE: int = 32
    MAX_CONCURRENCY: int = 4
    MAX_RETRIES: int = 3
    RETRY_DELAY_MS: int = 1000
    SYNC_CRON_SCHEDULE: str = "0 17 * * *"
    PERFORMANCE_THRESHOLD: float = Field(default=0.5, description="Minimum files/s before a performance alert")


settings = Settings()
