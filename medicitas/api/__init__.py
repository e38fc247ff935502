"""
Sandbox backend for local development and integration tests.
"""
