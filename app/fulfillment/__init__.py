"""
Fulfillment app: fan-out after an order completes.

Usage:
    from fulfillment.services import FanoutDispatcher

    records = FanoutDispatcher().dispatch(order)
"""
