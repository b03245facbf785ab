"""Client for the external meme generation service."""
