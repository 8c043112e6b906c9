"""Pathway Admin services."""
