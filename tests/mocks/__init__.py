"""Canned provider outputs and builders shared by tests."""
