"""Feature modules for neo-roles."""
