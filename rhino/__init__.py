"""Le Rhino — chat relay to n8n plus Google Drive document access."""

__version__ = "1.0.0"
