"""Cache tier implementations.

Provides the local (in-memory, LRU + TTL) and remote (Redis) tiers used by
the cache orchestrator.
Bounded Context: Cache Management
"""
