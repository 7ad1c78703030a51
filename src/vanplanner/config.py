"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="VANPLAN_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "School Van Route Planner API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for run outputs.")
    store_file: Optional[Path] = Field(
        default=None,
        description="JSON file holding vans, schools, students and absences. In-memory only when unset.",
    )
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use when computing travel times.",
    )
    osrm_max_retries: int = Field(default=1, ge=0)
    osrm_backoff_seconds: float = Field(default=0.5, ge=0.0)
    osrm_timeout_seconds: float = Field(default=10.0, gt=0.0)
    fallback_average_speed_kmh: float = Field(
        default=40.0,
        gt=0.0,
        description="Speed used to turn great-circle distance into duration when OSRM is unavailable.",
    )
    allow_estimated_travel: bool = Field(
        default=True,
        description="Fall back to great-circle estimates when the routing provider fails.",
    )
    heavy_traffic_speed_kmh: float = Field(default=18.0, gt=0.0)
    moderate_traffic_speed_kmh: float = Field(default=32.0, gt=0.0)
    early_start_time: str = Field(default="06:30", description="Default START time for EARLY routes (HH:MM).")
    midday_start_time: str = Field(default="11:30", description="Default START time for MIDDAY routes (HH:MM).")
    late_start_time: str = Field(default="17:00", description="Default START time for LATE routes (HH:MM).")
    max_backtracks: int = Field(default=5, ge=0)
    tracking_history_size: int = Field(default=50, ge=1)
    navigation_url_template: str = Field(
        default="https://www.google.com/maps/dir/?api=1&destination={latitude},{longitude}",
        description="Link attached to each route step for turn-by-turn navigation.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("data_root", "store_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("early_start_time", "midday_start_time", "late_start_time")
    @classmethod
    def _check_clock(cls, value: str) -> str:
        hours, _, minutes = value.partition(":")
        if not (hours.isdigit() and minutes.isdigit() and int(hours) < 24 and int(minutes) < 60):
            raise ValueError(f"Expected HH:MM, got '{value}'")
        return f"{int(hours):02d}:{int(minutes):02d}"

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
