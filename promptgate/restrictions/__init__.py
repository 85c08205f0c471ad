"""Durable restrictions and the moderator review workflow."""
