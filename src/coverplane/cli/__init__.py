"""Command-line interface for coverplane."""
