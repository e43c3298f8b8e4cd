"""Remote-call resilience.

Contains the fail-safe envelope that bounds and absorbs remote failures.
Bounded Context: Remote Resilience
"""
