"""
Payments app: order ledger and provider settlement.

This app handles:
- Product catalogue entries sold through checkout
- Orders and their pending -> completed/failed lifecycle
- Provider callbacks and status polling (AppyPay, SISLOG, Stripe)

Related apps:
    - fulfillment: Fan-out after an order completes
    - conversions: Ad platform purchase reporting

Usage:
    from payments.services import Reconciler

    result = Reconciler().handle_callback("sislog", payload)
"""
