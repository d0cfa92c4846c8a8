"""domainguard - Domain blocking and blocked-access monitoring."""

__version__ = "0.1.0"
