from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from datapanel.config import Settings, settings


class PanelTimings(BaseModel):
    """Client timer windows, in seconds."""

    model_config = ConfigDict(frozen=True)

    transition: float = Field(default=0.3, ge=0)
    loading_delay: float = Field(default=0.3, ge=0)
    error_dismiss: float = Field(default=5.0, ge=0)
    refresh_debounce: float = Field(default=0.3, ge=0)

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> PanelTimings:
        source = source or settings
        return cls(
            transition=source.transition_ms / 1000,
            loading_delay=source.loading_delay_ms / 1000,
            error_dismiss=source.error_dismiss_ms / 1000,
            refresh_debounce=source.refresh_debounce_ms / 1000,
        )
