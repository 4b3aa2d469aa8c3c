from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values


def load_env_file(path: str | Path = ".env") -> int:
    """Load a .env file into ``os.environ`` without overriding variables already set.

    Returns the number of variables that were set.
    """
    env_path = Path(path)
    if not env_path.is_file():
        return 0
    loaded = 0
    for key, value in dotenv_values(env_path).items():
        if value is None or key in os.environ:
            continue
        os.environ[key] = value
        loaded += 1
    return loaded
