"""Service layer for the rentbook backend."""
