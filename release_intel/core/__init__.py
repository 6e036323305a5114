"""Domain enums and models."""
