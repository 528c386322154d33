"""Similar-cafe search: query building, scoring and ranking."""

__version__ = "0.1.0"
