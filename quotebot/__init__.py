"""Two-sided market making bot with inventory skew and self-healing order cycles."""

__version__ = "0.1.0"
