# meter_ingest/core/config.py

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # project root
ENV_PATH = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        extra="ignore",
    )

    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Server
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=4000)

    # Mongo (MONGODB_URI is the documented key, the others are aliases)
    MONGODB_URI: Optional[str] = None
    MONGODB_URL: Optional[str] = None
    MONGO_URI: Optional[str] = None
    MONGODB_DB: str = Field(default="energy_meter")
    MONGODB_COLLECTION: str = Field(default="energyreadings")
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = Field(default=5000)

    def _raw_mongo_uri(self) -> str:
        return (self.MONGODB_URI or self.MONGODB_URL or self.MONGO_URI or "").strip()

    @property
    def is_database_configured(self) -> bool:
        return bool(self._raw_mongo_uri())

    def get_mongo_uri(self) -> str:
        uri = self._raw_mongo_uri()
        if not uri:
            raise RuntimeError("Mongo URI is not set (set MONGODB_URI or MONGODB_URL or MONGO_URI)")
        return uri


settings = Settings()
