"""User notifications for restriction outcomes."""
