"""
Conversions app: server-side ad conversion reporting.

Usage:
    from conversions.services import ConversionService

    result = ConversionService.submit({"event_id": "purchase_ORD-1", ...})
"""
