"""Core package - configuration, logging and exceptions."""
