"""Data models shared across resolution, composition and testing."""
