"""MentionGuard: real-time brand mention crisis detection."""

__version__ = "0.1.0"
