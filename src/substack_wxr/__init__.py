"""Convert Substack exports into WordPress WXR documents."""

__version__ = "0.1.0"
