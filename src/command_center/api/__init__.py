"""HTTP surface over the command service."""
