"""cvparse: CV ingestion and structured extraction."""

__version__ = "0.1.0"
