"""SQLite entity store consumed by the backup subsystem."""
