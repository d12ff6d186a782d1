"""
Tests for notifications app.

This package contains test modules for:
- test_models.py: NotificationType, Notification and PushDevice model tests
- test_services.py: NotificationService and device registration tests
- test_push_targets.py: raw and structured push token parsing
- test_tasks.py: push delivery task tests
- test_views.py: API endpoint tests

Usage:
    pytest app/notifications/tests/
"""
