"""Settings loading from YAML, .env files and environment variables."""
