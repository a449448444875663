"""Pydantic schemas for on-disk JSON files."""
