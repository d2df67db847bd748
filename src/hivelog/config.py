"""Configuration loading for the hivelog CLI."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

DB_PATH_ENV = "HIVELOG_DB"
DEFAULT_CONFIG_PATH = Path("config/hivelog.json")


@dataclass
class HivelogConfig:
    """Runtime configuration with defaults.

    Attributes:
        db_path: SQLite database file.
        editor: Name stamped on manual inspection edits.
        suggestion_limit: Hives offered per unresolved record.
        debug_log: File the CLI writes debug logs to with --debug.
    """

    db_path: Path = field(default_factory=lambda: Path("data/hivelog.db"))
    editor: str = "beekeeper"
    suggestion_limit: int = 3
    debug_log: Path = field(default_factory=lambda: Path.home() / ".hivelog" / "debug.log")

    def __post_init__(self) -> None:
        """Ensure paths are Path objects."""
        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)
        if isinstance(self.debug_log, str):
            self.debug_log = Path(self.debug_log)


def load_config(config_path: Path | None = None) -> HivelogConfig:
    """Load configuration from JSON, falling back to defaults.

    Reads ``config/hivelog.json`` when *config_path* is None; a missing
    file yields the defaults. Unknown keys are ignored. The ``HIVELOG_DB``
    environment variable overrides ``db_path`` from the file.

    Args:
        config_path: Optional explicit path to the JSON file.

    Returns:
        HivelogConfig with file values merged over defaults.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)

    field_names = {f.name for f in fields(HivelogConfig)}
    kwargs = {k: v for k, v in data.items() if k in field_names}

    env_db = os.environ.get(DB_PATH_ENV)
    if env_db:
        kwargs["db_path"] = env_db

    return HivelogConfig(**kwargs)
