# src/taskpulse/connectors/__init__.py
