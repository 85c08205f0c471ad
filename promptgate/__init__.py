"""promptgate — content-safety gate for generation prompts.

Audits prompts before they are admitted to the generation pipeline, tracks
repeated violations per user, escalates enforcement automatically, and gives
moderators a review workflow for automated mutes.
"""

__version__ = "0.1.0"
