# config.py
# Environment-driven settings for the entry point.
#
# The engine itself takes everything as constructor arguments; this module
# only feeds run.py. Values come from the process environment, optionally
# seeded from a .env file.

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

_TRUE = {"1", "true", "yes", "on"}


class ReactorConfig(BaseModel):
    """Settings for one trace replay."""

    trace_path: str | None = Field(default=None, description="Trace document to replay.")
    tag_path: str = Field(default="tag", min_length=1, description="Path of the dispatch tag in each state.")
    trace_key: str = Field(default="states", min_length=1, description="Key of the state list in the document.")
    decode_itf: bool = Field(default=False, description="Unwrap ITF value encodings when loading.")
    quiet: bool = Field(default=False, description="Suppress per-phase console lines.")

    @field_validator("decode_itf", "quiet", mode="before")
    @classmethod
    def _parse_flag(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() in _TRUE
        return value

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> "ReactorConfig":
        """
        Build settings from MBT_* environment variables.

        A .env file is loaded first; variables already set in the
        environment take precedence over it.
        """
        load_dotenv(dotenv_path)
        values = {
            "trace_path": os.getenv("MBT_TRACE_PATH"),
            "tag_path": os.getenv("MBT_TAG_PATH"),
            "trace_key": os.getenv("MBT_TRACE_KEY"),
            "decode_itf": os.getenv("MBT_DECODE_ITF"),
            "quiet": os.getenv("MBT_QUIET"),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})
