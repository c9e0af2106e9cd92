"""
Services Layer

Pure business logic services that:
- Accept domain inputs (IDs, sessions, etc.)
- Return domain outputs (models, dataclasses)
- Do NOT depend on HTTP request/response objects
"""
