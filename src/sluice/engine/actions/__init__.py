"""Action implementations."""
