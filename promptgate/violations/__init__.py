"""Per-user rolling violation counting."""
