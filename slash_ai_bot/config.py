from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


@dataclass(slots=True)
class Settings:
    discord_token: str
    sync_guild_commands: bool

    gemini_api_key: str
    gemini_base_url: str
    gemini_model: str
    gemini_timeout_seconds: int
    gemini_temperature: float
    gemini_max_output_tokens: int

    sqlite_path: Path
    max_history_messages: int
    max_message_chars: int
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            discord_token=_clean_token(_env_lookup("DISCORD_TOKEN") or ""),
            sync_guild_commands=_env_bool("DISCORD_SYNC_GUILD_COMMANDS", False),
            gemini_api_key=_env_str("GEMINI_API_KEY", ""),
            gemini_base_url=_env_str("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"),
            gemini_model=_env_str("GEMINI_MODEL", "gemini-2.5-flash"),
            gemini_timeout_seconds=_env_int("GEMINI_TIMEOUT_SECONDS", 90),
            gemini_temperature=_env_float("GEMINI_TEMPERATURE", 0.7),
            gemini_max_output_tokens=_env_int("GEMINI_MAX_OUTPUT_TOKENS", 0),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/slash_ai_bot.db")).expanduser(),
            max_history_messages=_env_int("MAX_HISTORY_MESSAGES", 10, aliases=("MAX_RECENT_MESSAGES",)),
            max_message_chars=_env_int("MAX_MESSAGE_CHARS", 1900),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required")
        if self.discord_token == "put_your_discord_bot_token_here":
            raise ValueError("DISCORD_TOKEN is still placeholder")

        if not self.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        if self.gemini_api_key == "put_your_gemini_api_key_here":
            raise ValueError("GEMINI_API_KEY is still placeholder")
        if not self.gemini_model:
            raise ValueError("GEMINI_MODEL cannot be empty")

        if self.gemini_timeout_seconds < 5:
            raise ValueError("GEMINI_TIMEOUT_SECONDS must be >= 5")
        if self.gemini_temperature < 0.0 or self.gemini_temperature > 2.0:
            raise ValueError("GEMINI_TEMPERATURE must be in [0, 2]")
        if self.gemini_max_output_tokens < 0:
            raise ValueError("GEMINI_MAX_OUTPUT_TOKENS must be >= 0 (0 disables explicit cap)")
        if self.gemini_max_output_tokens and self.gemini_max_output_tokens < 64:
            raise ValueError("GEMINI_MAX_OUTPUT_TOKENS must be 0 or >= 64")

        if self.max_history_messages < 1:
            raise ValueError("MAX_HISTORY_MESSAGES must be >= 1")
        if self.max_message_chars < 200 or self.max_message_chars > 2000:
            raise ValueError("MAX_MESSAGE_CHARS must be in [200, 2000]")
