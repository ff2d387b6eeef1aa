# src/taskpulse/__init__.py

"""Task reminders: a polling reminder engine with quiet hours, snooze and completion cascades."""

__version__ = "0.1.0"
