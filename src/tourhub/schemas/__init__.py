# src/tourhub/schemas/__init__.py
"""Pydantic schemas for the tourhub API."""

from .message import AttachmentRead, MessageRead, UserSummary

__all__ = ["AttachmentRead", "MessageRead", "UserSummary"]
