"""Core caching orchestration: configuration, keys, single-flight and the cache itself."""
