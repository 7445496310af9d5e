"""Settings Pydantic v2 schemas."""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class SettingsOut(BaseModel):
    """Public view of the runtime settings (branding + calendar policy)."""

    timezone: str
    weekly_off_mode: int
    weekly_off_label: str
    desktop_enabled: bool
    desktop_disabled_at: Optional[str] = None
    test_date_override: Optional[str] = None
    company_name: str
    company_logo: Optional[str] = None
    brand_color: str
    effective_date: date


class SettingsUpdate(BaseModel):
    """Partial update; only fields that are set are written."""

    timezone: Optional[str] = Field(None, max_length=64)
    weekly_off_mode: Optional[int] = Field(None, ge=1, le=4)
    desktop_enabled: Optional[bool] = None
    test_date_override: Optional[str] = Field(
        None, description="YYYY-MM-DD, or empty string to clear",
    )
    company_name: Optional[str] = Field(None, max_length=100)
    company_logo: Optional[str] = Field(None, max_length=500)
    brand_color: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
