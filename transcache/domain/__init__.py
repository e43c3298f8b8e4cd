"""Domain layer: value objects, tier interfaces, events and exceptions."""
