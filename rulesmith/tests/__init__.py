"""Rulesmith test suite."""
