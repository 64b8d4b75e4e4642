"""Switchyard CLI commands."""
