"""Command-line interface for Release Intel."""
