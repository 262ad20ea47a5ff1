"""TOML configuration loader for the chat settings.

Loads the ``[chat]`` table from defaults.toml shipped with the package, or
from a user-supplied file.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from streamchat.schemas.config import ChatConfig

# Default config directory relative to the streamchat package
_CONFIG_DIR = Path(__file__).parent.parent / "config"


def load_chat_config(config_path: Path | None = None, **overrides: object) -> ChatConfig:
    """Load chat settings from a TOML file.

    Args:
        config_path: Path to a TOML file. Defaults to streamchat/config/defaults.toml.
        **overrides: Field values that replace the file's values when not None.

    Returns:
        The validated ChatConfig.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the file has no [chat] table.
        pydantic.ValidationError: If a value is invalid.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Chat config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    chat_section = raw.get("chat")
    if not isinstance(chat_section, dict):
        raise ValueError(f"No [chat] section found in {path}")

    values = dict(chat_section)
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ChatConfig(**values)
