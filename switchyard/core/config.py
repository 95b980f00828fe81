"""Configuration management for Switchyard.

Engine settings live in ``~/.switchyard.json``. A missing or malformed file
falls back to defaults so the engine can always start.
"""

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from switchyard.utils.file_io import write_text_atomic
from switchyard.utils.log import get_logger


logger = get_logger()

ENV_HOME = "SWITCHYARD_HOME"
ENV_PROJECT_PATH = "SWITCHYARD_PROJECT_PATH"


class QualityThresholds(BaseModel):
    """Upper latency bounds (exclusive, ms) of each quality bucket."""

    excellent: int = 300
    good: int = 800
    fair: int = 1500

    @model_validator(mode="after")
    def _check_monotonic(self) -> "QualityThresholds":
        if not (0 < self.excellent <= self.good <= self.fair):
            raise ValueError("quality thresholds must satisfy 0 < excellent <= good <= fair")
        return self


class EngineConfig(BaseModel):
    """Engine configuration stored in ~/.switchyard.json"""

    # Registry directory; defaults to ~/.switchyard
    data_dir: Optional[str] = None
    # Project root used for project-scope adapter paths; defaults to the cwd
    project_path: Optional[str] = None

    # Prober
    probe_trial_count: int = Field(default=3, ge=1, le=10)
    probe_timeout_sec: float = Field(default=10.0, gt=0)
    quality_thresholds_ms: QualityThresholds = Field(default_factory=QualityThresholds)

    # Optional directory for debug log files
    log_dir: Optional[str] = None


class ConfigManager:
    """Loads engine configuration and resolves home-relative paths."""

    def __init__(self, home: Optional[Path] = None) -> None:
        self.home = Path(home) if home is not None else Path.home()
        self.config_path = self.home / ".switchyard.json"
        self._config: Optional[EngineConfig] = None

    def get_config(self) -> EngineConfig:
        """Load and return the engine configuration."""
        if self._config is None:
            if self.config_path.exists():
                try:
                    data = json.loads(self.config_path.read_text(encoding="utf-8"))
                    self._config = EngineConfig(**data)
                    logger.debug(
                        "[config] Loaded engine configuration",
                        extra={"path": str(self.config_path)},
                    )
                except (
                    json.JSONDecodeError,
                    OSError,
                    UnicodeDecodeError,
                    ValueError,
                    TypeError,
                ) as e:
                    logger.warning(
                        "Error loading engine config: %s: %s",
                        type(e).__name__,
                        e,
                        extra={"error": str(e), "path": str(self.config_path)},
                    )
                    self._config = EngineConfig()
            else:
                self._config = EngineConfig()
                logger.debug(
                    "[config] Engine config not found; using defaults",
                    extra={"path": str(self.config_path)},
                )
        return self._config

    def save_config(self, config: EngineConfig) -> None:
        """Save engine configuration."""
        self._config = config
        write_text_atomic(self.config_path, config.model_dump_json(indent=2))
        logger.debug("[config] Saved engine configuration", extra={"path": str(self.config_path)})

    def data_dir(self) -> Path:
        """Directory holding ``providers.json``."""
        override = os.environ.get(ENV_HOME)
        if override:
            return Path(override).expanduser()
        configured = self.get_config().data_dir
        if configured:
            return Path(configured).expanduser()
        return self.home / ".switchyard"

    def project_path(self) -> Path:
        """Project root used for project-scope writes."""
        override = os.environ.get(ENV_PROJECT_PATH)
        if override:
            return Path(override).expanduser()
        configured = self.get_config().project_path
        if configured:
            return Path(configured).expanduser()
        return Path.cwd()

    def log_dir(self) -> Optional[Path]:
        configured = self.get_config().log_dir
        return Path(configured).expanduser() if configured else None

