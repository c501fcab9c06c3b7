"""Core infrastructure: logging, errors, database and Redis lifecycle."""
