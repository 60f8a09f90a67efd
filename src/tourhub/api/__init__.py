"""HTTP API for the tourhub backend."""
