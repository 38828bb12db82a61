"""Core utilities, persistence clients and exceptions."""
