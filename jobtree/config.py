"""Centralised settings for the jobtree engine.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from the package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("JOBTREE_WORKSPACE", Path.home() / ".jobtree_data")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "jobtree.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    @property
    def languages_path(self) -> Path:
        """Absolute path to the per-language rule table bundled with the package."""
        return Path(__file__).resolve().parent / "domain" / "languages.json"

    # ------------------------------------------------------------------
    # CLI
    # ------------------------------------------------------------------
    cli_config_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("JOBTREE_CLI_DIR", Path.home() / ".jobtree_cli")
        )
    )

    # ------------------------------------------------------------------
    # Language / logging
    # ------------------------------------------------------------------
    default_language: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_LANGUAGE", "ru")
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper()
    )

    # ------------------------------------------------------------------
    # Hierarchy bounds
    # ------------------------------------------------------------------
    small_jobs_min: int = field(
        default_factory=lambda: int(os.environ.get("SMALL_JOBS_MIN", "8"))
    )
    small_jobs_max: int = field(
        default_factory=lambda: int(os.environ.get("SMALL_JOBS_MAX", "12"))
    )
    micro_jobs_min: int = field(
        default_factory=lambda: int(os.environ.get("MICRO_JOBS_MIN", "3"))
    )
    micro_jobs_max: int = field(
        default_factory=lambda: int(os.environ.get("MICRO_JOBS_MAX", "6"))
    )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    view_label_max: int = field(
        default_factory=lambda: int(os.environ.get("VIEW_LABEL_MAX", "50"))
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)

    def max_children(self, level: str) -> int | None:
        """Hard cap on siblings for *level*, or ``None`` when uncapped."""
        return {"small": self.small_jobs_max, "micro": self.micro_jobs_max}.get(level)


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the API process or the CLI."""
    logging.basicConfig(
        level=level or settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Module-level singleton; import this everywhere:
#   from jobtree.config import settings
settings = Settings()
