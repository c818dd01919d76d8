"""HTTP API of mcpo-sync."""
