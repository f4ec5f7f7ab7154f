"""Command-line surface: argument parsing, JSON output and workspace selection."""
