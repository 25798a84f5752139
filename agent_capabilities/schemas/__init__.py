"""Shared pydantic schema bases."""

from .base import BaseSchema, FrozenSchema, PatchSchema

__all__ = ["BaseSchema", "FrozenSchema", "PatchSchema"]
