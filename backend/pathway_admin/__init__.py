"""Pathway Admin - back end of the credit-repair administration dashboard."""
__version__ = "1.0.0"
