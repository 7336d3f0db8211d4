"""LMS HTTP API client module."""

from .client import LmsAPIError, LmsClient

__all__ = ["LmsAPIError", "LmsClient"]
