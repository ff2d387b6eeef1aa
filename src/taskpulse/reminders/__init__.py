# src/taskpulse/reminders/__init__.py
