"""
Conversion intake endpoint.

Endpoints:
    POST /api/v1/conversions/events/ - Report a conversion

Responses:
    201: New event, delivered to the seller's destinations
    200: Event id already known; the recorded status is returned
    400: Validation error (missing event_id, no seller/product)
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from conversions.serializers import (
    ConversionEventRequestSerializer,
    ConversionEventResponseSerializer,
)
from conversions.services import ConversionService
from core.helpers import get_client_ip

logger = logging.getLogger(__name__)


class ConversionEventView(APIView):
    """
    Report a conversion for server-side delivery to ad platforms.

    Public: called from the storefront alongside the browser pixel, which
    shares the event id so the platforms deduplicate the two.
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        operation_id="report_conversion",
        summary="Report conversion",
        request=ConversionEventRequestSerializer,
        responses={
            201: ConversionEventResponseSerializer,
            200: OpenApiResponse(
                response=ConversionEventResponseSerializer,
                description="Event id already recorded, nothing delivered",
            ),
            400: OpenApiResponse(description="Validation error"),
        },
        tags=["Conversions"],
    )
    def post(self, request):
        serializer = ConversionEventRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        data["client_ip"] = get_client_ip(request)
        data["user_agent"] = request.META.get("HTTP_USER_AGENT", "")

        result = ConversionService.submit(data)
        if not result.success:
            return Response(result.to_response(), status=status.HTTP_400_BAD_REQUEST)

        submission = result.data
        return Response(
            ConversionEventResponseSerializer(submission.event).data,
            status=status.HTTP_201_CREATED if submission.created else status.HTTP_200_OK,
        )
