"""GitHub hosting API access."""

from changeforge.github.client import GitHubClient

__all__ = ["GitHubClient"]
