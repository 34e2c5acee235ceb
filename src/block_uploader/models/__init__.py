"""Pydantic models for configuration and upload results."""
