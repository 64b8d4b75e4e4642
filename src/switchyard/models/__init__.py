"""Pydantic models for configuration and deployment runtime state."""
