"""Moderator-approved exceptions to prompt auditing."""
