"""
DRF views for the escrow API.

Endpoints:
    GET  /api/v1/escrow/items/{id}/fees/                    Fee preview
    POST /api/v1/escrow/payment-intents/                    Authorization hold
    GET  /api/v1/escrow/transactions/                       List own transactions
    POST /api/v1/escrow/transactions/                       Materialize transaction
    GET  /api/v1/escrow/transactions/{id}/                  Transaction detail
    POST /api/v1/escrow/transactions/{id}/ship/             Seller marks shipped
    POST /api/v1/escrow/transactions/{id}/confirm-delivery/ Buyer confirms delivery
    POST /api/v1/escrow/transactions/{id}/dispute/          Buyer or seller disputes
    POST /api/v1/escrow/internal/auto-release/              Staff-only sweep trigger
    POST /api/v1/escrow/webhooks/gateway/                   Stripe webhooks (public)

Security:
    - Mutating endpoints require authentication
    - Party checks (seller ships, buyer confirms) are made by the state
      machine and surface as 403
    - Application errors are rendered by core.exception_handler
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema, extend_schema_view
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from escrow.serializers import (
    AutoReleaseReportSerializer,
    CreatePaymentIntentSerializer,
    CreateTransactionSerializer,
    DisputeSerializer,
    FeeBreakdownSerializer,
    MarkShippedSerializer,
    OpenDisputeSerializer,
    PaymentIntentResponseSerializer,
    TransactionSerializer,
)
from escrow.services import TransactionStore, build_engine
from escrow.workers import AutoReleaseScheduler

logger = logging.getLogger(__name__)


class ItemFeesView(APIView):
    """
    Preview the fee breakdown for an item.

    GET /api/v1/escrow/items/{item_id}/fees/
    """

    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="preview_item_fees",
        summary="Preview fees for an item",
        tags=["Escrow"],
        responses={200: FeeBreakdownSerializer, 404: OpenApiResponse(description="Item not found")},
    )
    def get(self, request, item_id):
        fees = build_engine().checkout.preview_fees(item_id)
        return Response(FeeBreakdownSerializer(fees.as_decimal_dict()).data)


class PaymentIntentView(APIView):
    """
    Place an authorization hold for an item.

    POST /api/v1/escrow/payment-intents/

    Request body:
        {"item_id": "..."}

    Returns:
        {"payment_intent_id": "pi_xxx", "client_secret": "...", "fees": {...}}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_payment_intent",
        summary="Create payment intent (authorization hold)",
        tags=["Escrow"],
        request=CreatePaymentIntentSerializer,
        responses={
            201: PaymentIntentResponseSerializer,
            400: OpenApiResponse(description="Buying own item"),
            402: OpenApiResponse(description="Card declined"),
            409: OpenApiResponse(description="Item unavailable"),
        },
    )
    def post(self, request):
        serializer = CreatePaymentIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        quote = build_engine().checkout.create_payment_intent(
            buyer_id=request.user.pk,
            item_id=serializer.validated_data["item_id"],
        )
        data = {
            "payment_intent_id": quote.payment_intent_id,
            "client_secret": quote.client_secret,
            "fees": quote.fees.as_decimal_dict(),
        }
        return Response(PaymentIntentResponseSerializer(data).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_transactions",
        summary="List transactions",
        tags=["Escrow - Transactions"],
    ),
    retrieve=extend_schema(
        operation_id="get_transaction",
        summary="Get transaction",
        tags=["Escrow - Transactions"],
    ),
)
class TransactionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    ViewSet for escrowed transactions.

    list / retrieve:
        Transactions where the caller is buyer or seller (staff see all).

    create:
        Materialize a transaction after the buyer confirmed the intent.

    ship / confirm_delivery / dispute:
        Party actions; each is a single state-machine transition.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = TransactionSerializer

    def get_queryset(self):
        return TransactionStore().for_party(self.request.user)

    @extend_schema(
        operation_id="create_transaction",
        summary="Create transaction from a confirmed payment intent",
        tags=["Escrow - Transactions"],
        request=CreateTransactionSerializer,
        responses={
            201: TransactionSerializer,
            409: OpenApiResponse(description="Intent not authorized or item unavailable"),
        },
    )
    def create(self, request):
        serializer = CreateTransactionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = build_engine().state_machine.create(
            item_id=serializer.validated_data["item_id"],
            buyer_id=request.user.pk,
            payment_intent_id=serializer.validated_data["payment_intent_id"],
            shipping_address=serializer.validated_data["shipping_address"],
        )
        return Response(TransactionSerializer(txn).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="mark_transaction_shipped",
        summary="Mark shipped (seller)",
        tags=["Escrow - Transactions"],
        request=MarkShippedSerializer,
        responses={200: TransactionSerializer},
    )
    @action(detail=True, methods=["post"])
    def ship(self, request, pk=None):
        serializer = MarkShippedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = build_engine().state_machine.mark_shipped(
            pk,
            actor_id=request.user.pk,
            tracking_number=serializer.validated_data["tracking_number"],
            carrier=serializer.validated_data["carrier"],
        )
        return Response(TransactionSerializer(txn).data)

    @extend_schema(
        operation_id="confirm_transaction_delivery",
        summary="Confirm delivery (buyer)",
        tags=["Escrow - Transactions"],
        request=None,
        responses={
            200: TransactionSerializer,
            503: OpenApiResponse(description="Capture failed transiently, retry"),
        },
    )
    @action(detail=True, methods=["post"], url_path="confirm-delivery")
    def confirm_delivery(self, request, pk=None):
        txn = build_engine().state_machine.confirm_delivery(pk, actor_id=request.user.pk)
        return Response(TransactionSerializer(txn).data)

    @extend_schema(
        operation_id="dispute_transaction",
        summary="Open a dispute (buyer or seller)",
        tags=["Escrow - Transactions"],
        request=OpenDisputeSerializer,
        responses={201: DisputeSerializer},
    )
    @action(detail=True, methods=["post"])
    def dispute(self, request, pk=None):
        serializer = OpenDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        dispute = build_engine().disputes.open_dispute(
            pk,
            actor_id=request.user.pk,
            reason=serializer.validated_data["reason"],
            description=serializer.validated_data["description"],
        )
        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)


class AutoReleaseTriggerView(APIView):
    """
    Run the auto-release sweep now (staff only).

    POST /api/v1/escrow/internal/auto-release/
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="trigger_auto_release",
        summary="Run auto-release sweep",
        tags=["Escrow - Internal"],
        request=None,
        responses={200: AutoReleaseReportSerializer},
    )
    def post(self, request):
        engine = build_engine()
        scheduler = AutoReleaseScheduler(state_machine=engine.state_machine, store=engine.store)
        report = scheduler.sweep()

        logger.info(
            "Auto-release sweep triggered manually",
            extra={"user_id": request.user.pk, "released": report["released"]},
        )
        return Response(AutoReleaseReportSerializer(report).data)
