"""Core infrastructure: exceptions, configuration and logging."""
