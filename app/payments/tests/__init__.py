"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Product and Order model tests
- test_adapters.py: AppyPay, SISLOG and Stripe adapter tests
- test_ledger.py: Compare-and-set transitions and order synthesis
- test_reconciler.py: Signal application and fan-out triggering
- test_polling.py: Pending order polling
- test_views.py: Provider callback endpoint
- test_integration.py: Callback to fan-out journeys

Usage:
    pytest app/payments/tests/
    pytest app/payments/tests/test_reconciler.py
"""
