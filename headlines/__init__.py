"""Session-personalized news digest service."""
