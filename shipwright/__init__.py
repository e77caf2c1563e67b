"""Shipwright - deployment pipeline and deployment monitoring."""

__version__ = "0.1.0"
