"""Domain models for accounts, items, lootboxes and command outcomes."""

from ._validation import ModelValidationError

__all__ = ["ModelValidationError"]
