"""Trace and request-logging middleware."""
