"""Configuration handling for worktree-lens"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from worktree_lens.constants import STATUS_DIR_NAME, WAITING_STATE_STALE_THRESHOLD
from worktree_lens.exceptions import ConfigError


def expand_tilde(path: str) -> str:
    """Expand a leading ``~/`` to the home directory."""
    if path.startswith("~/"):
        return str(Path.home() / path[2:])
    return path


def get_config_path() -> Path:
    """Path to the config file (~/.config/worktree-lens/config.json)."""
    return Path.home() / ".config" / "worktree-lens" / "config.json"


@dataclass
class Config:
    """Configuration for worktree-lens with validation."""

    # Diffs
    context_lines: int = 3

    # Change notification
    diff_debounce_ms: int = 300
    watcher_debounce_ms: int = 50
    debounce_max_wait_ms: Optional[int] = 2000

    # Session status
    poll_interval: float = 1.0
    status_dir: str = field(default_factory=lambda: str(Path.home() / STATUS_DIR_NAME))
    settings_path: str = field(default_factory=lambda: str(Path.home() / ".claude" / "settings.json"))
    claude_projects_dir: str = field(default_factory=lambda: str(Path.home() / ".claude" / "projects"))
    transcript_fallback: bool = True
    stale_threshold_override: Optional[int] = None  # Seconds; replaces tool-aware thresholds
    waiting_stale_threshold: int = WAITING_STATE_STALE_THRESHOLD

    # History
    page_size: int = 50

    # Execution
    workers: Optional[int] = None  # Parallel status loads (None = auto-detect)
    busy_retries: int = 2
    verbose: bool = False
    debug: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_context_lines()
        self._validate_debounce()
        self._validate_poll_interval()
        self._validate_thresholds()
        self._validate_page_size()
        self._validate_workers()
        self.status_dir = expand_tilde(self.status_dir)
        self.settings_path = expand_tilde(self.settings_path)
        self.claude_projects_dir = expand_tilde(self.claude_projects_dir)

    def _validate_context_lines(self):
        """Validate context_lines is not negative."""
        if self.context_lines < 0:
            raise ValueError(f"context_lines must not be negative, got {self.context_lines}")

    def _validate_debounce(self):
        """Validate debounce windows."""
        if self.diff_debounce_ms <= 0:
            raise ValueError(f"diff_debounce_ms must be positive, got {self.diff_debounce_ms}")
        if self.watcher_debounce_ms <= 0:
            raise ValueError(f"watcher_debounce_ms must be positive, got {self.watcher_debounce_ms}")
        if self.debounce_max_wait_ms is not None and self.debounce_max_wait_ms < self.diff_debounce_ms:
            raise ValueError(
                f"debounce_max_wait_ms must be at least diff_debounce_ms "
                f"({self.diff_debounce_ms}), got {self.debounce_max_wait_ms}"
            )

    def _validate_poll_interval(self):
        """Validate poll_interval is positive."""
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")

    def _validate_thresholds(self):
        """Validate staleness thresholds."""
        if self.stale_threshold_override is not None and self.stale_threshold_override <= 0:
            raise ValueError(
                f"stale_threshold_override must be positive, got {self.stale_threshold_override}"
            )
        if self.waiting_stale_threshold <= 0:
            raise ValueError(
                f"waiting_stale_threshold must be positive, got {self.waiting_stale_threshold}"
            )

    def _validate_page_size(self):
        """Validate page_size is positive."""
        if self.page_size <= 0:
            raise ValueError(f"page_size must be positive, got {self.page_size}")

    def _validate_workers(self):
        """Validate workers and busy_retries."""
        if self.workers is not None and self.workers <= 0:
            raise ValueError(f"workers must be positive, got {self.workers}")
        if self.busy_retries < 0:
            raise ValueError(f"busy_retries must not be negative, got {self.busy_retries}")

    @property
    def diff_debounce(self) -> float:
        """Working-diff refresh window in seconds."""
        return self.diff_debounce_ms / 1000.0

    @property
    def watcher_debounce(self) -> float:
        """Watcher-level coalescing window in seconds."""
        return self.watcher_debounce_ms / 1000.0

    @property
    def debounce_max_wait(self) -> Optional[float]:
        """Maximum debounce delay in seconds, or None for unbounded."""
        if self.debounce_max_wait_ms is None:
            return None
        return self.debounce_max_wait_ms / 1000.0

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def get(self, key: str, default=None):
        """Get config value by key."""
        return getattr(self, key, default)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        known_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in config_dict.items() if k in known_fields}
        return cls(**filtered)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load config from disk, returning defaults if the file doesn't exist."""
        config_path = Path(path) if path else get_config_path()
        if not config_path.exists():
            return cls()

        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse config file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read config file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} does not contain a JSON object")

        try:
            return cls.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config in {config_path}: {e}") from e

    def save(self, path: Optional[Path] = None) -> None:
        """Save config to disk, creating directories if needed."""
        config_path = Path(path) if path else get_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)
        data = self.to_dict()
        # Runtime flags come from the command line
        data.pop("verbose", None)
        data.pop("debug", None)
        temp_file = config_path.with_suffix(".tmp")
        temp_file.write_text(json.dumps(data, indent=2) + "\n")
        os.replace(temp_file, config_path)
