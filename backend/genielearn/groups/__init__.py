"""Study groups and membership, backed by DuckDB."""
