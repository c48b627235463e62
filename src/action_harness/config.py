"""Harness configuration, overridable through ``ACTION_HARNESS_*`` env vars."""
from __future__ import annotations

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarnessSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ACTION_HARNESS_", frozen=True)

    resync_period: float = Field(default=0.5, gt=0, description="Cache re-list interval (s)")
    resync_buffer: float = Field(
        default=0.1,
        ge=0,
        description="Extra sleep added on top of resync_period by wait_for_resync (s)",
    )
    sync_timeout: float = Field(default=10.0, gt=0, description="Upper bound on sync() (s)")
    name_suffix_length: int = Field(default=5, ge=1)
    read_only_verbs: List[str] = Field(default_factory=lambda: ["list", "watch"])

    @property
    def resync_wait(self) -> float:
        return self.resync_period + self.resync_buffer
