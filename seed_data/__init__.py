"""Bootstrap content loaded into a fresh store."""
