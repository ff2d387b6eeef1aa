# src/taskpulse/tasks/__init__.py
