"""Fuzzy-logic detector for runaway processes."""
