"""Meme generation backend: job dispatch, generation client and storage."""

__version__ = "0.1.0"
