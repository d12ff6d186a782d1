"""
Authentication application.

Provides the email-based custom User shared by buyers, sellers and staff
administrators, plus JWT token endpoints (djangorestframework-simplejwt).

Usage:
    from authentication.models import User
"""
