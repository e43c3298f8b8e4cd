"""Infrastructure layer: concrete tiers, resilience, settings and logging."""
