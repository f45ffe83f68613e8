"""Command-line interface for usage tracking and privacy settings."""
