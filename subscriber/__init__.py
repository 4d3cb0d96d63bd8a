"""Event Grid edge subscriber module."""
