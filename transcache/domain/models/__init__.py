"""Value objects shared by the cache layers."""
