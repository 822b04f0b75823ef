"""Photobase Web API."""
