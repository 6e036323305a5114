"""Services for Release Intel."""
