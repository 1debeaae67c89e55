"""Shared utility helpers used across connectors, parsers and services."""
