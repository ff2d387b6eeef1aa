# src/taskpulse/core/__init__.py
