# src/taskpulse/cli/__init__.py
