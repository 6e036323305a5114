"""Route modules for Release Intel."""
