"""Shared utilities for stepwright."""
