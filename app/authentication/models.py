"""
Authentication models.

This module defines the custom user model shared by every marketplace role:
buyers, sellers and staff administrators are all plain Users.

Related files:
    - managers.py: Custom user manager for email-based creation

Security:
    - User passwords hashed with Django's PBKDF2
    - Token issuance is handled by djangorestframework-simplejwt
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    The email address doubles as the identity used by reconciliation's
    last-resort match (buyer email + amount + time window), so it is
    stored normalized and unique.

    Fields:
        email: Primary identifier, unique, used for login
        first_name / last_name: Display name for receipts and transfers
        phone_number: Optional contact number
        is_active: Whether the user account is active
        is_staff: Whether the user can access admin endpoints
        date_joined: When the user account was created
        updated_at: When the user record was last modified
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    first_name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="User's first name",
    )
    last_name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="User's last name",
    )
    phone_number = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Contact phone number",
    )

    # Account status flags
    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site and admin endpoints.",
    )

    # Timestamps
    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        """Return the user's email as string representation."""
        return self.email

    def get_full_name(self):
        """Return "First Last", falling back to the email address."""
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.email

    def get_short_name(self):
        """Return the first name, falling back to the email local part."""
        return self.first_name or self.email.split("@")[0]
