"""Shared helpers used across greenwire subsystems."""
