"""Workforce certification API."""
