"""Automated single-round raffle coordinator."""

__version__ = "1.0.0"
