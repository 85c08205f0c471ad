"""Prompt auditing: local patterns, escalation, and the audit orchestrator."""
