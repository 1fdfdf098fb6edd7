"""Markup-checker package."""

from pagelint.validation.checker import ValidationReport, validate

__all__ = ["validate", "ValidationReport"]
