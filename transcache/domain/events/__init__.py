"""Domain events."""
