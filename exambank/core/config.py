from functools import lru_cache
from typing import Dict, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings sourced from environment variables."""

    project_name: str = "Exam Bank Service"
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = Field(
        default=["*"],
        description="Comma-separated origins allowed for CORS (use '*' for all)",
        validation_alias=AliasChoices("EXAMBANK_CORS_ORIGINS", "CORS_ORIGINS"),
    )
    mongo_uri_jee: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EXAMBANK_MONGO_URI_JEE", "MONGODB_URI_JEE"),
    )
    mongo_uri_neet: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EXAMBANK_MONGO_URI_NEET", "MONGODB_URI_NEET"),
    )
    mongo_db_name_jee: str = Field(
        default="exambank_jee",
        validation_alias=AliasChoices("EXAMBANK_MONGO_DB_NAME_JEE", "MONGODB_DB_NAME_JEE"),
    )
    mongo_db_name_neet: str = Field(
        default="exambank_neet",
        validation_alias=AliasChoices("EXAMBANK_MONGO_DB_NAME_NEET", "MONGODB_DB_NAME_NEET"),
    )
    mongo_uris: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra canonical exam key -> Mongo URI mapping (JSON object)",
        validation_alias=AliasChoices("EXAMBANK_MONGO_URIS", "MONGODB_URIS"),
    )
    operation_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        validation_alias=AliasChoices("EXAMBANK_OPERATION_TIMEOUT_SECONDS", "OPERATION_TIMEOUT_SECONDS"),
    )
    allow_unrecognized_exam_types: bool = Field(
        default=False,
        validation_alias=AliasChoices("EXAMBANK_ALLOW_UNRECOGNIZED_EXAM_TYPES", "ALLOW_UNRECOGNIZED_EXAM_TYPES"),
    )
    random_selection_lock_filter: str = Field(
        default="unlocked",
        validation_alias=AliasChoices("EXAMBANK_RANDOM_SELECTION_LOCK_FILTER", "RANDOM_SELECTION_LOCK_FILTER"),
    )
    difficulty_selection_lock_filter: str = Field(
        default="any",
        validation_alias=AliasChoices(
            "EXAMBANK_DIFFICULTY_SELECTION_LOCK_FILTER", "DIFFICULTY_SELECTION_LOCK_FILTER"
        ),
    )
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("EXAMBANK_LOG_LEVEL", "LOG_LEVEL"))

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, value):
        """Allow comma-separated or JSON array strings for CORS origins."""

        if isinstance(value, str):
            if value.strip() == "":
                return []
            # If provided as JSON array, let pydantic parse it
            if value.strip().startswith("["):
                return value
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("random_selection_lock_filter", "difficulty_selection_lock_filter")
    @classmethod
    def check_lock_filter(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("unlocked", "locked", "any"):
            raise ValueError("lock filter must be one of: unlocked, locked, any")
        return value

    def store_for(self, exam_key: str) -> Optional[Dict[str, str]]:
        """Return ``{"uri", "db_name"}`` for a canonical exam key, or None when unconfigured."""

        builtin = {
            "JEE": (self.mongo_uri_jee, self.mongo_db_name_jee),
            "NEET": (self.mongo_uri_neet, self.mongo_db_name_neet),
        }
        uri, db_name = builtin.get(exam_key, (None, None))
        extra = {key.strip().upper(): value for key, value in self.mongo_uris.items()}
        uri = uri or extra.get(exam_key)
        if not uri:
            return None
        if not db_name:
            db_name = "exambank_" + "_".join(exam_key.lower().split())
        return {"uri": uri, "db_name": db_name}


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
