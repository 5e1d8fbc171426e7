"""Command execution and response normalization pipeline."""
