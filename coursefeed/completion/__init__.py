"""Completion policy shared by the progress store and the gating controller."""

from .policy import BlockReason, CompletionPolicy


__all__ = ["BlockReason", "CompletionPolicy"]
