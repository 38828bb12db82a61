"""Session and resource services."""
