"""Environment variable loading utilities for service and development environments."""

import os
from pathlib import Path

from dotenv import load_dotenv


def load_env(env_file: str | Path | None = None) -> None:
    """Load environment variables from a .env file.

    An explicit ``env_file`` wins. Otherwise ``AGENT_ENV_FILE`` is honored and,
    failing that, standard dotenv discovery is used. Values already present in
    the process environment are never overridden.
    Also sets up UTF-8 encoding environment variables since chat traffic is
    mostly non-ASCII.
    """
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    os.environ.setdefault("PYTHONUTF8", "1")

    candidate = env_file or os.getenv("AGENT_ENV_FILE")
    if candidate:
        env_path = Path(candidate)
        if env_path.exists():
            load_dotenv(env_path, override=False)
            return
    load_dotenv(override=False)
