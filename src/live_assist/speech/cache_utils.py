"""Cache locations for downloaded models."""

import shutil
from pathlib import Path


def get_cache_root(cache_name: str | None = None) -> Path:
    """
    Get the root cache directory, creating it if needed.

    Args:
        cache_name: Optional subdirectory name within the cache root

    Returns:
        Path to the cache directory
    """
    cache_root = Path.home() / ".cache" / "live_assist"

    if cache_name:
        cache_root = cache_root / cache_name

    cache_root.mkdir(parents=True, exist_ok=True)
    return cache_root


def get_whisper_cache_dir() -> Path:
    """Get the Whisper models cache directory."""
    return get_cache_root("models") / "whisper"


def clear_models_cache() -> bool:
    """
    Remove downloaded models.

    Returns:
        True if the cache is now empty, False if removal failed
    """
    models_dir = get_cache_root("models")
    try:
        shutil.rmtree(models_dir)
    except FileNotFoundError:
        return True
    except OSError:
        return False
    get_whisper_cache_dir()
    return True
