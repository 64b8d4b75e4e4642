"""Command-line interface for Switchyard."""
