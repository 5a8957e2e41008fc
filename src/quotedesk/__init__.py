"""quotedesk: stock quotes with a cached instrument registry."""

__version__ = "0.1.0"
