"""File-backed account and session collaborators."""
