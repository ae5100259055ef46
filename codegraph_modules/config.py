"""
Module graph settings.

Environment variables use the CODEGRAPH_MODULES_ prefix.
Example: CODEGRAPH_MODULES_MAX_CONCURRENT_LOADS=4
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_ENV_FILE = ".env" if Path(".env").is_file() else None


class ModuleGraphSettings(BaseSettings):
    """Settings shared by the loaders, the import map resolver and the graph builder."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_prefix="CODEGRAPH_MODULES_",
        extra="ignore",
    )

    # Traversal
    max_concurrent_loads: int = Field(default=16, ge=1, description="Loader calls in flight at once")
    max_redirects: int = Field(default=10, ge=0, description="Redirect hops followed per request")

    # Default loader
    http_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    user_agent: str = "codegraph-modules/0.1.0"

    # Import map
    surface_import_map_diagnostics: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"


@lru_cache(maxsize=1)
def get_settings() -> ModuleGraphSettings:
    """Process-wide settings instance (read once from the environment)."""
    return ModuleGraphSettings()
