"""Production file path resolution using platformdirs.

Linux: ~/.local/share/bulktag/
macOS: ~/Library/Application Support/bulktag/
"""

from pathlib import Path

import platformdirs

APP_NAME = "bulktag"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB)."""
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_config_dir() -> Path:
    """Return the per-user config directory (~/.bulktag)."""
    return Path.home() / ".bulktag"


def get_default_db_path() -> Path:
    """Return the default SQLite database file path.

    Creates the data directory if it does not exist yet.
    """
    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "bulktag.db"
