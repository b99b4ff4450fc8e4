"""Threshold - workspace trust gating for editor tooling configuration."""

__version__ = "0.1.0"
