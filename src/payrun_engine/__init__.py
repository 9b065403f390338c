"""Pay run staging engine."""

__version__ = "1.0.0"
