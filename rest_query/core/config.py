from functools import lru_cache
import json
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rest_query.schemas.query import DEFAULT_LIMIT, DEFAULT_START, MAX_WHERE_DEPTH, PUBLICATION_STATES


def flexible_json_loads(value: str) -> Any:
    """Gracefully fall back to raw strings when JSON decoding fails."""
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="REST_QUERY_",
        extra="ignore",
    )

    # Supplied by the content-type registry as "live,preview" or a JSON list.
    # The str arm lets pydantic-settings hand a comma-separated env value to
    # the validator undecoded; the validated value is always a list.
    PUBLICATION_STATES: list[str] | str = Field(default_factory=lambda: list(PUBLICATION_STATES))

    DEFAULT_START: int = Field(default=DEFAULT_START, ge=0)
    DEFAULT_LIMIT: int = Field(default=DEFAULT_LIMIT, ge=-1)

    # Upper bounds for a JSON-encoded ``_where`` query param.
    MAX_WHERE_LENGTH: int = 10_000
    MAX_WHERE_DEPTH: int = Field(default=MAX_WHERE_DEPTH, ge=1)

    @field_validator("PUBLICATION_STATES", mode="before")
    @classmethod
    def parse_publication_states(cls, value: str | list[str] | None) -> list[str]:
        if value is None:
            return list(PUBLICATION_STATES)
        if isinstance(value, str):
            decoded = flexible_json_loads(value) if value.strip().startswith("[") else value
            items = decoded.split(",") if isinstance(decoded, str) else decoded
        else:
            items = value
        normalized: list[str] = []
        for state in items:
            cleaned = str(state).strip()
            if cleaned and cleaned not in normalized:
                normalized.append(cleaned)
        return normalized or list(PUBLICATION_STATES)


@lru_cache
# Also used as a FastAPI dependency so tests can swap settings per app.
def get_settings() -> Settings:
    return Settings()
