"""Settings and logging configuration."""
