"""Image Crawler - budgeted, cancellable image collection from web sources."""

__version__ = "0.3.0"
