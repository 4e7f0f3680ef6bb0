"""Domain models and errors shared across MentionGuard services."""
