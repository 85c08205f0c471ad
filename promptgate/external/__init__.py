"""Third-party moderation service integration."""

from promptgate.external.client import ExternalModerationClient

__all__ = ["ExternalModerationClient"]
