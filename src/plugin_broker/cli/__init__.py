"""Command-line interface for the plugin broker."""
