"""
Tests for authentication app.

Usage:
    pytest app/authentication/tests/
"""
