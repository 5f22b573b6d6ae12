"""workmem: session working memory for the claude CLI, kept consistent across concurrent sessions."""

__version__ = "0.3.0"
