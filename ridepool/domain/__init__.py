"""Domain types and rules with no storage or framework dependencies."""
