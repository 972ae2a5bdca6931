"""
Runtime configuration for the ticket query pipeline.

Values come from environment variables so the same build can run with
different thresholds per deployment. The config is frozen once loaded.
"""

import logging
import os

from pydantic import BaseModel, ConfigDict, Field


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class NLPConfig(BaseModel):
    """Thresholds, limits and toggles shared by every pipeline stage."""

    model_config = ConfigDict(frozen=True)

    intent_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    entity_confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    multi_intent_floor: float = Field(default=0.3, ge=0.0, le=1.0)
    max_query_length: int = Field(default=500, gt=0)
    max_response_length: int = Field(default=1000, gt=0)
    entity_cache_enabled: bool = True
    entity_cache_ttl: int = Field(default=300, ge=0)
    debug_enabled: bool = False

    @classmethod
    def from_env(cls) -> "NLPConfig":
        return cls(
            intent_confidence_threshold=float(os.getenv("TICKET_NLP_INTENT_THRESHOLD", "0.7")),
            entity_confidence_threshold=float(os.getenv("TICKET_NLP_ENTITY_THRESHOLD", "0.6")),
            multi_intent_floor=float(os.getenv("TICKET_NLP_MULTI_INTENT_FLOOR", "0.3")),
            max_query_length=int(os.getenv("TICKET_NLP_MAX_QUERY_LENGTH", "500")),
            max_response_length=int(os.getenv("TICKET_NLP_MAX_RESPONSE_LENGTH", "1000")),
            entity_cache_enabled=_env_bool("TICKET_NLP_CACHE_ENABLED", "true"),
            entity_cache_ttl=int(os.getenv("TICKET_NLP_CACHE_TTL", "300")),
            debug_enabled=_env_bool("TICKET_NLP_DEBUG", "false"),
        )


def configure_logging(config: NLPConfig) -> None:
    """Set the package logger level from the debug toggle."""
    level = logging.DEBUG if config.debug_enabled else logging.INFO
    logging.getLogger("ticket-nlp").setLevel(level)
