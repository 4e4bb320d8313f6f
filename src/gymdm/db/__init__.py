"""Persistence layer: schema and repositories."""

from .schema import SCHEMA

__all__ = ["SCHEMA"]
