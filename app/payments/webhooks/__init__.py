"""
Inbound provider callbacks.

Usage:
    # In urls.py
    from payments.webhooks.views import provider_callback

    urlpatterns = [
        path("callbacks/<str:provider>/", provider_callback, name="provider_callback"),
    ]
"""

from payments.webhooks.views import provider_callback

__all__ = [
    "provider_callback",
]
