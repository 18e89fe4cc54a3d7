"""
URL configuration for the payments app.

Routes:
    - POST /callbacks/<provider>/ - Provider callback (appypay, sislog, stripe)
    - GET  /callbacks/sislog/     - SISLOG webhook variant (query string)

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments.webhooks.views import provider_callback

app_name = "payments"

urlpatterns = [
    path("callbacks/<str:provider>/", provider_callback, name="provider_callback"),
]
