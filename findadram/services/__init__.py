"""Services for Find a Dram."""
