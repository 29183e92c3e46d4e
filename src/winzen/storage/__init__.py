"""DuckDB persistence for users, markets, positions, and audit records."""
