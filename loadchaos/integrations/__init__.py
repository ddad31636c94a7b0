"""External collaborators: monitoring sink and cache flushing."""
