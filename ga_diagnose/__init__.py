"""GA4 page diagnostics, traffic breakdown and daily trend reports."""

__version__ = "0.3.0"
