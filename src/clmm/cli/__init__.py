"""Command-line interface for the CLMM engine."""
