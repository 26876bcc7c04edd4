"""Simulation lifecycle and step control."""
