"""QuickBooks Online OAuth bridge and paginated API gateway."""

__version__ = "0.1.0"
