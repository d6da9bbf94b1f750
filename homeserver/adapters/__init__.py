"""Persistence adapters implementing the domain ports."""
