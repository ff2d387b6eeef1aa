# src/taskpulse/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Malformed values fall back to defaults instead of failing startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKPULSE"

PERMISSION_VALUES = ("default", "granted", "denied")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Real environment variables win over .env entries.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _env_float(name: str, default: float, *, minimum: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if minimum is not None and value < minimum:
        return default
    return value


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    raw = (os.getenv(name) or "").strip().lower()
    return raw if raw in choices else default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    markers_db_path: Path

    # ---- Reminder engine ----
    poll_interval_seconds: float
    snooze_minutes: int
    behavior_sample_size: int
    neglect_after_hours: float
    advance_grace_minutes: int
    quiet_start: str
    quiet_end: str
    notification_permission: str

    # ---- Completion summary / LLM (OpenRouter) ----
    completion_summary: bool
    openrouter_api_key: str | None
    openrouter_base_url: str
    llm_models: list[str]
    extra_headers: dict[str, str]

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "taskpulse") or "taskpulse"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskpulse"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        markers_db_path = _env_path(_k("MARKERS_DB_PATH"), data_dir / "markers.sqlite3")

        poll_interval_seconds = _env_float(_k("POLL_INTERVAL_SECONDS"), 30.0, minimum=0.1)
        snooze_minutes = _env_int(_k("SNOOZE_MINUTES"), 15, minimum=1)
        behavior_sample_size = _env_int(_k("BEHAVIOR_SAMPLE_SIZE"), 20, minimum=1)
        neglect_after_hours = _env_float(_k("NEGLECT_AFTER_HOURS"), 24.0, minimum=0.0)
        advance_grace_minutes = _env_int(_k("ADVANCE_GRACE_MINUTES"), 5, minimum=1)
        quiet_start = _env(_k("QUIET_START"), "22:00").strip() or "22:00"
        quiet_end = _env(_k("QUIET_END"), "08:00").strip() or "08:00"
        notification_permission = _env_choice(_k("NOTIFICATION_PERMISSION"), "granted", PERMISSION_VALUES)

        completion_summary = _env_bool(_k("COMPLETION_SUMMARY"), True)
        openrouter_api_key = _first_env(_k("OPENROUTER_API_KEY"), "OPENROUTER_API_KEY", default=None)
        openrouter_base_url = _env(_k("OPENROUTER_BASE_URL"), "https://openrouter.ai/api/v1")

        http_referer = _env(_k("HTTP_REFERER"), "https://example.com")
        title = _env(_k("APP_TITLE"), app_name)
        extra_headers = {
            "HTTP-Referer": http_referer,
            "X-Title": title,
        }

        llm_models = _env_list(
            _k("LLM_MODELS"),
            [
                "x-ai/grok-4.1-fast:free",
                "qwen/qwen-2.5-72b-instruct:free",
                "deepseek/deepseek-chat-v3-0324:free",
            ],
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            markers_db_path=markers_db_path,
            poll_interval_seconds=poll_interval_seconds,
            snooze_minutes=snooze_minutes,
            behavior_sample_size=behavior_sample_size,
            neglect_after_hours=neglect_after_hours,
            advance_grace_minutes=advance_grace_minutes,
            quiet_start=quiet_start,
            quiet_end=quiet_end,
            notification_permission=notification_permission,
            completion_summary=completion_summary,
            openrouter_api_key=openrouter_api_key,
            openrouter_base_url=openrouter_base_url,
            llm_models=llm_models,
            extra_headers=extra_headers,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
