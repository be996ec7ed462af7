"""Configuration management for localchat.

The core itself takes every setting per call; this module only gives the
CLI (and other hosts) a place to keep them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from localchat.types import UserProfile


class TimeoutConfig(BaseModel):
    """Bounds in seconds.  ``0`` disables a bound."""

    local: float = Field(default=3.0, ge=0)
    remote: float = Field(default=10.0, ge=0)
    stream_first_byte: float = Field(default=15.0, ge=0)
    connection_test: float = Field(default=5.0, ge=0)


class ProfileConfig(BaseModel):
    display_name: str = ""
    role: str = ""
    bio: str = ""
    location: str = ""

    def to_profile(self) -> UserProfile:
        return UserProfile(
            display_name=self.display_name,
            role=self.role,
            bio=self.bio,
            location=self.location,
        )


class ChatConfig(BaseModel):
    api_url: str = "http://localhost:11434"
    model_name: str = ""
    temperature: float = Field(default=0.7, ge=0)
    top_p: float | None = Field(default=None, gt=0, le=1)
    context_length: int = Field(default=4096, gt=0)
    system_prompt: str = "You are a helpful assistant."
    thinking_enabled: bool = True
    user_profile: ProfileConfig | None = None
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)


CONFIG_FILENAME = "localchat.yaml"


def load_config(
    config_path: str | Path | None = None,
) -> tuple[ChatConfig, Path | None]:
    """Load configuration from a YAML file.

    Returns (config, resolved_path).  *resolved_path* is ``None`` when no
    file was found and built-in defaults are used.

    Search order (first match wins):
      1. Explicit ``--config`` path
      2. Current working directory: ``./localchat.yaml``
      3. User config dir: ``~/.localchat/localchat.yaml``
    """
    if config_path is None:
        for d in (Path.cwd(), Path.home() / ".localchat"):
            p = d / CONFIG_FILENAME
            if p.exists():
                config_path = p
                break

    if config_path is None:
        return ChatConfig(), None

    resolved = Path(config_path)
    if not resolved.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(resolved) as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}
    return ChatConfig.model_validate(raw), resolved.resolve()
