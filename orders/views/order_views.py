from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from orders.helpers.request import query_int
from orders.helpers.response import APIResponse
from orders.services.order_service import OrderService, STATUS_EVENTS
from stock.services.base_service import Actor
from stock.services.order_service import OrderRoutingService


@csrf_exempt
@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def orders(request):
    actor = Actor.from_request(request)
    try:
        if request.method == "GET":
            result = OrderService.list_orders(
                company_id=actor.company_id,
                page=query_int(request, "page", 1),
                per_page=query_int(request, "per_page", 20),
                status=request.query_params.get("status"),
                client_id=query_int(request, "client_id"),
                search=request.query_params.get("search"),
            )
            return APIResponse.from_result(result)

        data = request.data
        result = OrderService.create_order(
            actor,
            items=data.get("items", []),
            client_id=data.get("client_id"),
            client_name=data.get("client_name", ""),
            notes=data.get("notes", ""),
        )
        return APIResponse.from_result(result, status=201)
    except Exception as e:
        return APIResponse.service_error(e)


@csrf_exempt
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def get_order(request, order_id):
    actor = Actor.from_request(request)
    try:
        return APIResponse.from_result(OrderService.get_order(order_id, actor.company_id))
    except Exception as e:
        return APIResponse.service_error(e)


@csrf_exempt
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def route_order(request, order_id):
    actor = Actor.from_request(request)
    try:
        return APIResponse.from_result(OrderRoutingService.route_order(order_id, actor))
    except Exception as e:
        return APIResponse.service_error(e)


@csrf_exempt
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def order_action(request, order_id, action):
    if action not in STATUS_EVENTS:
        return APIResponse.error(f"Unknown action: {action}", "invalid_action")

    actor = Actor.from_request(request)
    try:
        result = OrderService.change_status(
            order_id, STATUS_EVENTS[action], actor, reason=request.data.get("reason", "")
        )
        return APIResponse.from_result(result)
    except Exception as e:
        return APIResponse.service_error(e)
