"""Turn static-site form submissions into pull requests and issues on GitHub."""

__version__ = "3.0.0"
