"""API route modules."""

from . import activities, seasons, votes

__all__ = ["activities", "seasons", "votes"]
