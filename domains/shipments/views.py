# domains/shipments/views.py
import logging

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import parsers, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from shared.permissions import IsStaffUser

from .adapters import get_adapter
from .exceptions import CarrierError, OrderNotTrackableError
from .scheduler import build_tracking_scheduler
from .serializers import (
    StartTrackingSerializer,
    TrackingHistoryItemSerializer,
    TrackingJobSerializer,
    TrackingUpdateSerializer,
)
from .services import get_tracking_history, get_tracking_stats

logger = logging.getLogger(__name__)


def _job_data(job):
    return TrackingJobSerializer(job).data if job is not None else None


def _carrier_error(e: CarrierError) -> Response:
    logger.error("Carrier error: %s", e)
    return Response(
        {"success": False, "error": "Erro ao consultar os Correios", "message": str(e)},
        status=status.HTTP_502_BAD_GATEWAY,
    )


# --------------------------------------------------------------------
# POST /api/v1/tracking/job/start/   body: {intervalMinutes}
# --------------------------------------------------------------------
class TrackingJobStartAPI(APIView):
    parser_classes = [parsers.JSONParser]
    permission_classes = [IsStaffUser]

    @extend_schema(request=StartTrackingSerializer, responses={200: TrackingJobSerializer})
    def post(self, request):
        ser = StartTrackingSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        interval = ser.validated_data["intervalMinutes"]

        job = build_tracking_scheduler().start(interval)
        return Response(
            {
                "success": True,
                "message": "Serviço automático de rastreamento iniciado",
                "interval": interval,
                "job": _job_data(job),
            },
            status=status.HTTP_200_OK,
        )


# --------------------------------------------------------------------
# POST /api/v1/tracking/job/stop/
# --------------------------------------------------------------------
class TrackingJobStopAPI(APIView):
    permission_classes = [IsStaffUser]

    @extend_schema(request=None, responses={200: TrackingJobSerializer})
    def post(self, request):
        job = build_tracking_scheduler().stop()
        return Response(
            {
                "success": True,
                "message": "Serviço automático de rastreamento parado",
                "job": _job_data(job),
            },
            status=status.HTTP_200_OK,
        )


# --------------------------------------------------------------------
# GET /api/v1/tracking/job/status/
# --------------------------------------------------------------------
class TrackingJobStatusAPI(APIView):
    permission_classes = [IsStaffUser]

    @extend_schema(responses={200: TrackingJobSerializer})
    def get(self, request):
        job = build_tracking_scheduler().status()
        return Response({"success": True, "job": _job_data(job)}, status=status.HTTP_200_OK)


# --------------------------------------------------------------------
# POST /api/v1/tracking/job/process/  (사이클 1회 수동 실행)
# --------------------------------------------------------------------
class TrackingJobProcessAPI(APIView):
    permission_classes = [IsStaffUser]

    @extend_schema(request=None, responses={200: TrackingJobSerializer})
    def post(self, request):
        job = build_tracking_scheduler().process_tracking_updates()
        return Response(
            {
                "success": True,
                "message": "Processamento de rastreamento executado com sucesso",
                "job": _job_data(job),
            },
            status=status.HTTP_200_OK,
        )


# --------------------------------------------------------------------
# POST /api/v1/tracking/orders/{order_id}/update/
# --------------------------------------------------------------------
class OrderTrackingUpdateAPI(APIView):
    permission_classes = [IsStaffUser]

    @extend_schema(request=None, responses={200: TrackingUpdateSerializer})
    def post(self, request, order_id: int):
        try:
            update = build_tracking_scheduler().force_update(order_id)
        except OrderNotTrackableError as e:
            return Response(
                {"success": False, "error": str(e)}, status=status.HTTP_404_NOT_FOUND
            )
        except CarrierError as e:
            return _carrier_error(e)

        if update is None:
            return Response(
                {"success": False, "error": "Nenhuma atualização disponível para este pedido"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(
            {
                "success": True,
                "message": "Rastreamento atualizado com sucesso",
                "update": update.as_payload(),
            },
            status=status.HTTP_200_OK,
        )


# --------------------------------------------------------------------
# GET /api/v1/tracking/orders/{order_id}/history/
# --------------------------------------------------------------------
class OrderTrackingHistoryAPI(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(responses={200: TrackingHistoryItemSerializer(many=True)})
    def get(self, request, order_id: int):
        history = get_tracking_history(order_id)
        return Response(
            {
                "success": True,
                "orderId": order_id,
                "history": TrackingHistoryItemSerializer(history, many=True).data,
                "count": len(history),
            },
            status=status.HTTP_200_OK,
        )


# --------------------------------------------------------------------
# GET /api/v1/tracking/code/{tracking_code}/  (운송사 직접 조회, 저장 안 함)
# --------------------------------------------------------------------
class TrackingCodeAPI(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        parameters=[
            OpenApiParameter(name="tracking_code", location=OpenApiParameter.PATH, type=str,
                             description="Código de rastreamento (ex: AM699556402BR)"),
        ],
        responses={200: dict},
    )
    def get(self, request, tracking_code: str):
        code = (tracking_code or "").strip().upper()
        if len(code) < 13:
            return Response(
                {"success": False, "error": "Código de rastreamento inválido"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            tracking = get_adapter("br.correios").track_one(code)
        except CarrierError as e:
            return _carrier_error(e)

        if not tracking:
            return Response(
                {"success": False, "error": "Código de rastreamento não encontrado"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(
            {"success": True, "trackingCode": code, "tracking": tracking},
            status=status.HTTP_200_OK,
        )


# --------------------------------------------------------------------
# GET /api/v1/tracking/stats/
# --------------------------------------------------------------------
class TrackingStatsAPI(APIView):
    permission_classes = [IsStaffUser]

    @extend_schema(responses={200: dict})
    def get(self, request):
        return Response({"success": True, "stats": get_tracking_stats()}, status=status.HTTP_200_OK)
