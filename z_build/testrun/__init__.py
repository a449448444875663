"""Test discovery and execution."""
