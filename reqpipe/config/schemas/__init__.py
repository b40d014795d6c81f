"""Schemas for client configuration files."""

from reqpipe.config.schemas.client import ClientConfigFile, RetryConfig


__all__ = ["ClientConfigFile", "RetryConfig"]
