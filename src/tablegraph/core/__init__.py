"""Core infrastructure: configuration, logging, errors and tokens."""
