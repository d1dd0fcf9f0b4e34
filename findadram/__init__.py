"""Find a Dram - whiskey menu trawler and catalog ingestion pipeline."""

__version__ = "0.1.0"
