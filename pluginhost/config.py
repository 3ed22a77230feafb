import os
from pathlib import Path

HOST_VERSION = "0.1.0"
HOST_NAME = "pluginhost"

# How long a bundle gets to call register_plugin() after it starts executing.
PLUGIN_REGISTRATION_TIMEOUT_S = 5.0
DEFAULT_FETCH_TIMEOUT_S = 15.0

BUNDLE_FILENAME = "main.py"
MANIFEST_FILENAME = "manifest.json"
STYLES_FILENAME = "styles.css"
BUNDLE_BUILD_COMMAND = "python build.py"

STORAGE_BACKENDS = {"sqlite", "filesystem"}


def get_data_directory() -> Path:
    """Get data directory based on environment."""
    # For development: use a local folder at project root
    if os.getenv("ENV") != "production":
        data_dir = Path(__file__).parent.parent / "data"
    else:
        # For production the embedding host tells us where its app data lives
        app_data = os.getenv("PLUGINHOST_DATA_DIR")
        if app_data:
            data_dir = Path(app_data) / HOST_NAME
        else:
            data_dir = Path.home() / f".{HOST_NAME}"

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_db_path() -> Path:
    """Get full path to database file."""
    return get_data_directory() / "plugins.db"


def get_plugins_directory() -> Path:
    """Get directory used by the filesystem storage backend."""
    plugins_dir = get_data_directory() / "plugins"
    plugins_dir.mkdir(parents=True, exist_ok=True)
    return plugins_dir


def get_storage_backend() -> str:
    backend = (os.getenv("PLUGINHOST_STORAGE") or "sqlite").strip().lower()
    if backend not in STORAGE_BACKENDS:
        raise ValueError(
            f"PLUGINHOST_STORAGE must be one of: {', '.join(sorted(STORAGE_BACKENDS))}"
        )
    return backend


def get_fetch_timeout() -> float:
    raw = os.getenv("PLUGINHOST_FETCH_TIMEOUT")
    if not raw:
        return DEFAULT_FETCH_TIMEOUT_S
    try:
        value = float(raw)
    except ValueError:
        raise ValueError("PLUGINHOST_FETCH_TIMEOUT must be a number of seconds") from None
    return value if value > 0 else DEFAULT_FETCH_TIMEOUT_S
