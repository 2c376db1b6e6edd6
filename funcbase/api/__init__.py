"""HTTP API for Funcbase."""
