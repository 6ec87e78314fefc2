"""Command-line interface for flitevault."""
