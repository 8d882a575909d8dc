# events/urls.py
"""
URL configuration for the activity/audit API.
"""

from django.urls import path

from events.views import (
    EventListView,
    EventDetailView,
    AggregateEventHistoryView,
    IntegrityCheckView,
)


app_name = "events"

urlpatterns = [
    path("", EventListView.as_view(), name="event-list"),
    path("integrity-check/", IntegrityCheckView.as_view(), name="integrity-check"),
    path(
        "aggregate/<str:aggregate_type>/<str:aggregate_id>/",
        AggregateEventHistoryView.as_view(),
        name="aggregate-history",
    ),
    path("<uuid:id>/", EventDetailView.as_view(), name="event-detail"),
]
