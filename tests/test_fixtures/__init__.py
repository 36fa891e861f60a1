"""Shared test doubles: in-memory remote tier, fake clock, settings factory."""
