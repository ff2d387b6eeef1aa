# src/taskpulse/llm/__init__.py
