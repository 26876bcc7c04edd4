"""Tabular export and charts."""
