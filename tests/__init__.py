"""Tests for the translation batch engine."""
