from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from orders.helpers.request import query_int
from orders.helpers.response import APIResponse
from orders.services.sale_service import SaleService
from stock.services.base_service import Actor


@csrf_exempt
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def list_sales(request):
    actor = Actor.from_request(request)
    try:
        result = SaleService.list(
            company_id=actor.company_id,
            page=query_int(request, "page", 1),
            per_page=query_int(request, "per_page", 20),
            status=request.query_params.get("status"),
            search=request.query_params.get("search"),
        )
        return APIResponse.from_result(result)
    except Exception as e:
        return APIResponse.service_error(e)


@csrf_exempt
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def get_sale(request, sale_id):
    actor = Actor.from_request(request)
    try:
        return APIResponse.from_result(SaleService.get(sale_id, actor.company_id))
    except Exception as e:
        return APIResponse.service_error(e)


@csrf_exempt
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def sale_action(request, sale_id, action):
    actor = Actor.from_request(request)
    data = request.data
    try:
        if action == "confirm":
            result = SaleService.confirm(sale_id, actor)
        elif action == "invoice":
            result = SaleService.invoice(sale_id, actor, invoice_number=data.get("invoice_number"))
        elif action == "cancel":
            result = SaleService.cancel(sale_id, actor, reason=data.get("reason", ""))
        else:
            return APIResponse.error(f"Unknown action: {action}", "invalid_action")
        return APIResponse.from_result(result)
    except Exception as e:
        return APIResponse.service_error(e)
