"""Core building blocks shared by every neo-roles feature: exceptions and value objects."""
