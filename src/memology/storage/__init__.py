"""SQLite persistence and artifact storage."""
