"""Web layer for Release Intel."""
