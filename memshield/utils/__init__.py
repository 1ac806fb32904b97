"""memshield utilities."""
