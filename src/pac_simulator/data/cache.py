import hashlib
import os
from pathlib import Path


def cache_dir() -> Path:
    path = Path(os.environ.get("PAC_SIMULATOR_CACHE_DIR", "data_cache"))
    path.mkdir(parents=True, exist_ok=True)
    return path


def key_path(prefix: str, key: str, suffix: str = ".csv") -> Path:
    h = hashlib.sha256(key.encode()).hexdigest()[:16]
    return cache_dir() / f"{prefix}_{h}{suffix}"
