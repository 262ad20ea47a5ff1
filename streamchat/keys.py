"""API key loading for streamchat.

Keys are read from these sources, in priority order:
  1. Environment variables (already set in the shell)
  2. ~/.streamchat/keys.env
  3. .env in the current directory

Nothing is ever written; the provider reads the key from the environment
on every request, so a key exported mid-session is picked up.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from streamchat.schemas.config import ChatConfig

logger = logging.getLogger(__name__)

STREAMCHAT_HOME = Path.home() / ".streamchat"
KEYS_FILE = STREAMCHAT_HOME / "keys.env"

KEY_SIGNUP_URL = "https://aistudio.google.com/apikey"


def load_keys_env(files: list[Path] | None = None) -> None:
    """Load KEY=VALUE files into os.environ without overwriting existing vars.

    Args:
        files: Files to read, earliest wins. Defaults to
            ~/.streamchat/keys.env then ./.env.
    """
    if files is None:
        files = [KEYS_FILE, Path.cwd() / ".env"]
    for env_file in files:
        if env_file.is_file():
            _load_env_file(env_file)


def _parse_env_line(line: str) -> tuple[str, str] | None:
    """Split one ``[export ]NAME=value`` line; None for blanks, comments and junk."""
    line = line.strip()
    if line.startswith("export "):
        line = line[len("export "):].lstrip()
    name, sep, value = line.partition("=")
    name = name.strip()
    if not sep or not name or name.startswith("#"):
        return None
    return name, value.strip().strip("'\"")


def _load_env_file(path: Path) -> list[str]:
    """Export the names in ``path`` that are unset, returning those names."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Skipping unreadable key file %s: %s", path, e)
        return []

    loaded: list[str] = []
    for pair in map(_parse_env_line, text.splitlines()):
        if pair is None:
            continue
        name, value = pair
        if os.environ.get(name):
            continue
        os.environ[name] = value
        loaded.append(name)

    if loaded:
        logger.debug("Loaded %s from %s", ", ".join(loaded), path)
    return loaded


def has_key(config: ChatConfig) -> bool:
    """Check whether the API key for ``config`` is present in the environment."""
    return bool(os.environ.get(config.api_key_env))
