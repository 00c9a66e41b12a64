"""Helper utilities for configuration and display."""
