"""Shared builders for translation batch engine tests."""
