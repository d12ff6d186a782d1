"""
Custom user manager for email-based authentication.

Related files:
    - models.py: User model that uses this manager

Security:
    - Passwords are automatically hashed via set_password()
    - Email addresses are stored fully lowercased; Paystack reports payer
      emails in lowercase and reconciliation compares them as identities
"""

from django.contrib.auth.models import BaseUserManager


class UserManager(BaseUserManager):
    """
    Manager for buyers, sellers and staff, keyed by email.

    Usage:
        buyer = User.objects.create_user(
            email="buyer@example.com",
            password="securepassword",
            first_name="Ada",
        )

        ops = User.objects.create_superuser(
            email="ops@example.com",
            password="adminpassword",
        )
    """

    @classmethod
    def normalize_email(cls, email):
        return (email or "").strip().lower()

    def get_by_natural_key(self, username):
        return self.get(**{self.model.USERNAME_FIELD: self.normalize_email(username)})

    def create_user(self, email, password=None, **extra_fields):
        """
        Create and save a marketplace user.

        Users created without a password (seeded sellers, imports) cannot
        log in until they set one.

        Raises:
            ValueError: If email is not provided
        """
        email = self.normalize_email(email)
        if not email:
            raise ValueError("The Email field must be set")

        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """Create an operations administrator with access to the admin endpoints."""
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(email, password, **extra_fields)
