"""Version information for neo-roles."""

__version__ = "0.1.0"
