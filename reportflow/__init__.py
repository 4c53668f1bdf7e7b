"""reportflow: AI-assisted report generation pipeline."""

__version__ = "0.1.0"
