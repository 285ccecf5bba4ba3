"""Run-to-territory engine: GPS trace validation, tile claims and ownership contests."""

__version__ = "1.0.0"
