"""
URL configuration for the conversions app.

Routes:
    - POST /events/ - Report a conversion

All routes are prefixed with /api/v1/conversions/ when included in the main URLconf.
"""

from django.urls import path

from conversions.views import ConversionEventView

app_name = "conversions"

urlpatterns = [
    path("events/", ConversionEventView.as_view(), name="conversion_event"),
]
