"""Real-time group chat.

Components:
    - ConnectionRegistry: group → live connections.
    - ChatGateway: connection lifecycle, persistence and fan-out.
    - MessageStore: append-only DuckDB message history.
"""
