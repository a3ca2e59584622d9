"""Core building blocks."""
