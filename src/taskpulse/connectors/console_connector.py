# src/taskpulse/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..reminders.emitter import InAppAlert, NativeNotification
from ..tasks.task_models import Task

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleNotificationSink:
    """Prints native notifications; the tag is the task id."""

    def show(self, notification: NativeNotification) -> None:
        sticky = " (sticky)" if notification.require_interaction else ""
        _print_ts(f"[NOTIFY]{sticky} {notification.title}: {notification.body} [{notification.tag}]")


class ConsoleAlertSink:
    """Prints the in-app alert with its actions mapped to slash commands."""

    def show(self, alert: InAppAlert) -> None:
        hints = []
        for action in alert.actions:
            if action.name == "snooze":
                hints.append(f"/snooze {alert.task_id} {action.minutes or ''}".rstrip())
            elif action.name == "complete":
                hints.append(f"/done {alert.task_id}")
        _print_ts(f"[ALERT] {alert.title}: {alert.body}  ->  " + " | ".join(hints))


class TerminalBellPlayer:
    def play(self, sound: str) -> None:
        if sys.stdout.isatty():
            sys.stdout.write("\a")
            sys.stdout.flush()
        logger.debug("Sound played: %s", sound)


class SettingsPermissionProvider:
    """The console host has no permission prompt; the answer comes from settings."""

    def __init__(self, value: str = "granted") -> None:
        self._value = value

    def query(self) -> str:
        return self._value

    def request(self) -> str:
        # Undecided on a console means yes.
        if self._value == "default":
            self._value = "granted"
        return self._value


def print_completion_summary(task: Task, text: str) -> None:
    _print_ts(f"[DONE] {task.title}: {text}")


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    if state.engine.notifications_disabled:
        _print_ts("[CONSOLE] Notifications are disabled; reminders will not be shown.")

    lock = state.lock

    def emit(text: str) -> None:
        _print_ts(text)

    while True:
        try:
            user_input = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            with lock:
                response = command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response is None:
            response = "Commands start with '/'. Use /help to list them."
        _print_ts(response)

    logger.info("Console connector finished.")
