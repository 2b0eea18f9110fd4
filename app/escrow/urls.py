"""
URL configuration for the escrow app.

All routes are prefixed with /api/v1/escrow/ when included in the main URLconf.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from escrow.views import (
    AutoReleaseTriggerView,
    ItemFeesView,
    PaymentIntentView,
    TransactionViewSet,
)
from escrow.webhooks.views import stripe_webhook

app_name = "escrow"

router = DefaultRouter()
router.register("transactions", TransactionViewSet, basename="transaction")

urlpatterns = [
    path("items/<uuid:item_id>/fees/", ItemFeesView.as_view(), name="item-fees"),
    path("payment-intents/", PaymentIntentView.as_view(), name="payment-intent"),
    path("internal/auto-release/", AutoReleaseTriggerView.as_view(), name="auto-release"),
    path("webhooks/gateway/", stripe_webhook, name="gateway-webhook"),
    path("", include(router.urls)),
]
