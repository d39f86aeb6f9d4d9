"""Dramatiq actors of the commission engine."""
