"""Profanity analysis service for movies and TV episodes."""

__version__ = "0.3.0"
