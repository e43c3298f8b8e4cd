"""Domain interfaces (abstract base classes) for the cache tiers."""
