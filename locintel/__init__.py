"""Location intelligence engine: venue data aggregation and location reports."""

__version__ = "0.1.0"
