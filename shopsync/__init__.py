"""shopsync: Shopify catalog and order ingestion with margin metrics."""

__version__ = "0.1.0"
