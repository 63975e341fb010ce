"""Core infrastructure: configuration, logging, durations, graph compilation."""
