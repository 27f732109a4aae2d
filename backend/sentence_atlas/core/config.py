"""Runtime configuration helpers.

Classes:
    Settings: Pydantic settings model capturing environment-driven defaults.

Functions:
    get_settings(): Return a cached Settings instance for dependency injection.
"""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Sentence Atlas API"
    log_level: str = "INFO"
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])
    default_model_id: str = "sentence-transformers/all-MiniLM-L6-v2"
    default_precision_mode: str = "fp32"
    embedding_device: str | None = None
    model_cache_dir: str | None = None
    openai_api_key: SecretStr | None = None
    default_embedding_batch_size: int = 32
    default_target_dim: int | None = None
    default_umap_fit_sample_size: int = 2000
    default_umap_transform_batch_size: int = 500
    umap_random_state: int | None = None


@lru_cache()
def get_settings() -> Settings:
    return Settings()
