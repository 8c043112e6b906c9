"""Pathway Admin models: ORM tables and canonical document records."""
