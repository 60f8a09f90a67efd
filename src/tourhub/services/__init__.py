"""Service layer for the tourhub messaging core."""
