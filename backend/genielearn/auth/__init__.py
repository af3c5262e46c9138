"""Session validation.

Services:
    - SessionStore: DuckDB-backed opaque bearer tokens, resolving a
      credential to an Identity.
"""
