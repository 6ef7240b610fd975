"""Core services: configuration, persistence, errors and logging."""
