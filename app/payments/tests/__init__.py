"""
Tests for the payments app.

Test modules:
- test_commission.py, test_references.py: pure money and reference helpers
- test_state_transitions.py: Transaction and RefundRequest FSM edges
- test_*_service.py: settlement services against the test database
- test_webhooks.py, test_tasks.py, test_views.py: HTTP and Celery edges
- test_integration.py: full purchase, payout and refund journeys
"""
