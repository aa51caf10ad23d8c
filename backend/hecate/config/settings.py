"""
Bot configuration - IRC identity, stream and status endpoints.
Values come from HECATE_* environment variables with deployment defaults.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "HECATE_"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    # IRC identity and connection
    nickname: str = Field("Hecate", min_length=1)
    irc_server: str = Field("irc.sleepy.zone", min_length=1)
    irc_port: int = Field(6667, ge=1, le=65535)
    irc_use_tls: bool = False
    channel: str = "#sleepyfm"

    # Icecast endpoints
    stream_url: str = "http://sleepy.zone:8000/blissomradio"
    stats_url: str = "http://sleepy.zone:8000/status-json.xsl"

    log_level: str = "INFO"

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, value: str) -> str:
        if not value or value[0] not in "#&":
            raise ValueError("channel must start with '#' or '&'")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from HECATE_* environment variables; unset keeps the default."""
        environ = os.environ if environ is None else environ

        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        # pydantic coerces "6697" -> int and "true"/"1" -> bool
        return cls(**values)
