from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from orders.helpers.request import query_int
from orders.helpers.response import APIResponse
from orders.services.client_service import ClientService
from stock.services.base_service import Actor


@csrf_exempt
@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def clients(request):
    actor = Actor.from_request(request)
    try:
        if request.method == "GET":
            result = ClientService.list(
                company_id=actor.company_id,
                page=query_int(request, "page", 1),
                per_page=query_int(request, "per_page", 20),
                search=request.query_params.get("search"),
            )
            return APIResponse.from_result(result)

        data = request.data
        result = ClientService.create(
            actor,
            name=data.get("name", ""),
            document=data.get("document", ""),
            email=data.get("email", ""),
            phone=data.get("phone", ""),
        )
        return APIResponse.from_result(result, status=201)
    except Exception as e:
        return APIResponse.service_error(e)
