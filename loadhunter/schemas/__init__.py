"""
schemas/ — Pydantic models for pipeline data and the internal API

Provides typed partial-update shapes for parsers and consistent
request/response validation for the routers.
"""
