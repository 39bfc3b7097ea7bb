# src/probity/config/settings.py
"""
Runtime settings.

Resolution order: explicit argument > environment > default.

    PROBITY_EXTRACT_LIMIT   failing rows kept per step (default 5)
    PROBITY_STEP_TIMEOUT    seconds per step evaluation (default: none)
    PROBITY_MODE            "report" | "pipeline" (default "report")
    PROBITY_WORKERS         concurrent step evaluations (default 1)
"""

from __future__ import annotations

import os
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

_ENV = {
    "extract_limit": "PROBITY_EXTRACT_LIMIT",
    "step_timeout": "PROBITY_STEP_TIMEOUT",
    "mode": "PROBITY_MODE",
    "workers": "PROBITY_WORKERS",
}


class Settings(BaseModel):
    extract_limit: int = Field(5, ge=0)
    step_timeout: Optional[float] = Field(None, gt=0)
    mode: Literal["report", "pipeline"] = "report"
    workers: int = Field(1, ge=1)

    @classmethod
    def from_env(cls, **overrides: Any) -> "Settings":
        """
        Build settings from the environment, then apply non-None overrides.

        Raises:
            ValueError: an override or environment value is invalid
        """
        values = {}
        for key, var in _ENV.items():
            raw = os.getenv(var)
            if raw is not None and raw.strip() != "":
                values[key] = raw.strip().lower() if key == "mode" else raw.strip()
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ValueError(f"Invalid settings: {e}") from None
