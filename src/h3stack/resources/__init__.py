"""Packaged data files (prerequisite registry, capability rules)."""
