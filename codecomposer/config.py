"""Configuration loading and management."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from codecomposer.constants import (
    DEFAULT_MAX_READ_MB,
    DEFAULT_MAX_REPLANS,
    DEFAULT_MAX_WRITE_MB,
    DEFAULT_MODEL,
    DEFAULT_MODEL_RETRIES,
    DEFAULT_MODEL_TIMEOUT,
    DEFAULT_SCAN_DEPTH,
    STATE_HOME,
)

logger = logging.getLogger(__name__)


def default_checkpoint_dir(workspace: Path) -> Path:
    """Per-workspace persistence directory (~/.codecomposer/<workspace name>)."""
    return Path.home() / STATE_HOME / workspace.resolve().name


@dataclass
class Config:
    """codecomposer configuration.

    Loads from .env and optionally .composer/config.json
    """

    # API Keys
    anthropic_api_key: Optional[str] = None

    # Model settings
    default_model: str = DEFAULT_MODEL
    model_timeout: int = DEFAULT_MODEL_TIMEOUT
    model_retries: int = DEFAULT_MODEL_RETRIES

    # Workflow settings
    max_replans: int = DEFAULT_MAX_REPLANS
    scan_depth: int = DEFAULT_SCAN_DEPTH

    # File limits
    max_read_mb: int = DEFAULT_MAX_READ_MB
    max_write_mb: int = DEFAULT_MAX_WRITE_MB

    # Where checkpoints and run transcripts are stored
    checkpoint_dir: Optional[Path] = None

    # Extra rules appended to the code writer prompt (from .composer/config.json)
    rules: list[str] = field(default_factory=list)

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> "Config":
        """Load configuration from environment and project-specific config.

        Args:
            project_root: Project root directory (for .composer/config.json)

        Returns:
            Config instance
        """
        load_dotenv()

        checkpoint_dir = os.getenv("COMPOSER_CHECKPOINT_DIR")
        config = cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            default_model=os.getenv("COMPOSER_DEFAULT_MODEL", DEFAULT_MODEL),
            model_timeout=int(os.getenv("COMPOSER_MODEL_TIMEOUT", DEFAULT_MODEL_TIMEOUT)),
            model_retries=int(os.getenv("COMPOSER_MODEL_RETRIES", DEFAULT_MODEL_RETRIES)),
            max_replans=int(os.getenv("COMPOSER_MAX_REPLANS", DEFAULT_MAX_REPLANS)),
            scan_depth=int(os.getenv("COMPOSER_SCAN_DEPTH", DEFAULT_SCAN_DEPTH)),
            max_read_mb=int(os.getenv("COMPOSER_MAX_READ_MB", DEFAULT_MAX_READ_MB)),
            max_write_mb=int(os.getenv("COMPOSER_MAX_WRITE_MB", DEFAULT_MAX_WRITE_MB)),
            checkpoint_dir=Path(checkpoint_dir).expanduser() if checkpoint_dir else None,
        )

        if project_root:
            if config.checkpoint_dir is None:
                config.checkpoint_dir = default_checkpoint_dir(project_root)

            project_config_path = project_root / ".composer" / "config.json"
            if project_config_path.exists():
                try:
                    with open(project_config_path) as f:
                        project_config = json.load(f)
                    config.rules = list(project_config.get("rules", []))
                    if "model" in project_config:
                        config.default_model = project_config["model"]
                except (json.JSONDecodeError, IOError) as e:
                    logger.warning("Ignoring invalid %s: %s", project_config_path, e)

        return config

    def validate(self) -> list[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if not self.anthropic_api_key:
            errors.append("No API key found. Set ANTHROPIC_API_KEY")

        if self.model_timeout <= 0:
            errors.append("model_timeout must be positive")

        if self.model_retries < 0:
            errors.append("model_retries must not be negative")

        if self.max_replans < 0:
            errors.append("max_replans must not be negative")

        if self.max_read_mb <= 0:
            errors.append("max_read_mb must be positive")

        if self.max_write_mb <= 0:
            errors.append("max_write_mb must be positive")

        return errors

    def to_dict(self) -> dict:
        """Convert config to dictionary (for logging/display)."""
        return {
            "default_model": self.default_model,
            "model_timeout": self.model_timeout,
            "model_retries": self.model_retries,
            "max_replans": self.max_replans,
            "scan_depth": self.scan_depth,
            "max_read_mb": self.max_read_mb,
            "max_write_mb": self.max_write_mb,
            "checkpoint_dir": str(self.checkpoint_dir) if self.checkpoint_dir else None,
            "rules": len(self.rules),
            "has_anthropic_key": bool(self.anthropic_api_key),
        }
