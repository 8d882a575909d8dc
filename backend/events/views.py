# events/views.py
"""
Activity/audit API views.

Every command emits an immutable BusinessEvent carrying the acting user;
these endpoints expose that trail. Administrators only.
"""

from django.core.exceptions import PermissionDenied
from django.shortcuts import get_object_or_404
from rest_framework import generics, views
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.authz import resolve_actor
from events.models import BusinessEvent
from events.serializers import BusinessEventListSerializer, BusinessEventDetailSerializer
from events.verification import full_integrity_check


def _require_admin(request):
    actor = resolve_actor(request)
    if not actor.is_admin:
        raise PermissionDenied("Administrators only.")
    return actor


class EventListView(generics.ListAPIView):
    """
    List events, newest first.

    GET /api/events/

    Supports filtering by:
    - event_type: Filter by event type (exact match)
    - aggregate_type: Filter by aggregate type
    - aggregate_id: Filter by aggregate ID
    - user_id: Filter by the acting user
    - occurred_at__gte / occurred_at__lte: Time window
    """

    serializer_class = BusinessEventListSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        _require_admin(self.request)
        qs = BusinessEvent.objects.select_related("caused_by_user").order_by("-stream_sequence")

        params = self.request.query_params
        filters = {
            "event_type": params.get("event_type"),
            "aggregate_type": params.get("aggregate_type"),
            "aggregate_id": params.get("aggregate_id"),
            "caused_by_user_id": params.get("user_id"),
            "occurred_at__gte": params.get("occurred_at__gte"),
            "occurred_at__lte": params.get("occurred_at__lte"),
        }
        qs = qs.filter(**{k: v for k, v in filters.items() if v})

        return qs[:1000]  # Limit for safety


class EventDetailView(views.APIView):
    """GET /api/events/<uuid>/"""

    permission_classes = [IsAuthenticated]

    def get(self, request, id):
        _require_admin(request)
        event = get_object_or_404(BusinessEvent.objects.select_related("caused_by_user"), id=id)
        return Response(BusinessEventDetailSerializer(event).data)


class AggregateEventHistoryView(views.APIView):
    """GET /api/events/aggregate/<type>/<id>/ -> events of one aggregate in order"""

    permission_classes = [IsAuthenticated]

    def get(self, request, aggregate_type, aggregate_id):
        _require_admin(request)
        events = BusinessEvent.objects.filter(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
        ).select_related("caused_by_user").order_by("sequence")
        return Response({
            "aggregate_type": aggregate_type,
            "aggregate_id": aggregate_id,
            "event_count": len(events),
            "events": BusinessEventListSerializer(events, many=True).data,
        })


class IntegrityCheckView(views.APIView):
    """GET /api/events/integrity-check/ -> sequence gaps and payload hash mismatches"""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        _require_admin(request)
        return Response(full_integrity_check())
