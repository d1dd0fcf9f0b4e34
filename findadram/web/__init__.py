"""Web API for Find a Dram."""
