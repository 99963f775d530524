"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_SEED_PATH = Path(__file__).parent / "matching" / "seed_animals.yaml"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "PawMatch"
    environment: str = "development"
    log_level: str = "debug"
    debug: bool = True

    # Google AI
    google_api_key: str
    gemini_model: str = "gemini-2.5-flash"
    embedding_model: str = "models/gemini-embedding-001"
    llm_timeout_seconds: float = 30.0

    # MongoDB
    mongodb_uri: str = "mongodb://mongodb:27017"
    mongodb_database: str = "pawmatch"

    # ChromaDB
    chromadb_host: str = "chromadb"
    chromadb_port: int = 8000

    # Sessions
    session_ttl_seconds: int = 3600
    session_history_limit: int = 20

    # Semantic cache
    semantic_cache_threshold: float = 0.85
    semantic_cache_max_entries: int = 10_000
    semantic_cache_eviction_fraction: float = 0.1

    # Matching
    scoring_candidate_limit: int = 10
    catalog_backend: str = "mongo"
    catalog_seed_path: Path = _DEFAULT_SEED_PATH

    # CORS
    frontend_url: str = "http://localhost:3000"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency for injecting settings."""
    return settings
