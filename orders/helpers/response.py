import logging

from rest_framework import status as http
from rest_framework.response import Response

from stock.services.base_service import ServiceError

logger = logging.getLogger(__name__)


class APIResponse:

    @staticmethod
    def success(data=None, message: str = "Success", status: int = http.HTTP_200_OK):
        return Response({"success": True, "message": message, "data": data}, status=status)

    @staticmethod
    def from_result(result: dict, status: int = http.HTTP_200_OK):
        """Wrap a service result dict, moving everything but success/message under `data`."""
        data = {k: v for k, v in result.items() if k not in ("success", "message")}
        return APIResponse.success(data=data, message=result.get("message", "Success"), status=status)

    @staticmethod
    def error(message: str = "Error", code: str = "error", details: dict = None,
              status: int = http.HTTP_400_BAD_REQUEST):
        return Response({
            "success": False,
            "error": {"code": code, "message": message, "details": details or {}},
        }, status=status)

    @staticmethod
    def service_error(e: Exception):
        if isinstance(e, ServiceError):
            return APIResponse.error(e.message, e.code, e.details, e.status)
        logger.exception("Unhandled error in orders API")
        return APIResponse.error("Internal server error", "server_error", status=http.HTTP_500_INTERNAL_SERVER_ERROR)
