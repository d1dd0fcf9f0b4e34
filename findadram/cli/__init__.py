"""Command-line interface for Find a Dram."""
