"""Pydantic schemas for profiles, edit deltas and patterns."""
