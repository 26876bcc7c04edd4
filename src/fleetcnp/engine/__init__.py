"""Contract Net allocation and settlement engines."""
