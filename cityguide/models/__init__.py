"""Pydantic and ORM models."""
