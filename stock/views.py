import logging

from django.http import JsonResponse
from rest_framework.views import APIView

from stock.services import (
    Actor, ServiceError, ValidationError,
    parse_date, get_date_range,
    FulfillmentSettingsService, ProductService, StockLedgerService, RecipeService,
    ProductionService, PackagingService,
)

logger = logging.getLogger(__name__)


def error_response(message: str, code: str = "error", status: int = 400, details: dict = None):
    data = {"success": False, "error": {"code": code, "message": message, "details": details or {}}}
    return JsonResponse(data, status=status)


def handle_service_error(e: Exception):
    if isinstance(e, ServiceError):
        return error_response(e.message, e.code, e.status, e.details)
    logger.exception("Unhandled error in stock API")
    return error_response("Internal server error", "server_error", 500)


class BaseStockView(APIView):

    def get_json_body(self, request):
        return request.data if isinstance(request.data, dict) else {}

    def get_actor(self, request) -> Actor:
        return Actor.from_request(request)

    def get_int(self, request, name: str, default: int = None):
        value = request.GET.get(name)
        if value in (None, ""):
            return default
        try:
            return int(value)
        except ValueError:
            raise ValidationError(f"{name} must be an integer", name)

    def get_bool(self, request, name: str, default: bool = None):
        value = request.GET.get(name)
        if value in (None, ""):
            return default
        return value.lower() in ("1", "true", "yes")

    def get_period(self, request):
        period = request.GET.get("period")
        if period:
            return get_date_range(period)
        return parse_date(request.GET.get("date_from")), parse_date(request.GET.get("date_to"))

    def success(self, data: dict, status: int = 200):
        return JsonResponse({"success": True, **data}, status=status)


# ==================== SETTINGS ====================

class FulfillmentSettingsView(BaseStockView):
    """GET/PUT /api/stock/settings/"""

    def get(self, request):
        try:
            return self.success({"settings": FulfillmentSettingsService.get_all()})
        except Exception as e:
            return handle_service_error(e)

    def put(self, request):
        try:
            data = self.get_json_body(request)
            result = FulfillmentSettingsService.update(**data)
            logger.info("Fulfillment settings updated by %s: %s", self.get_actor(request).email, sorted(data))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== PRODUCTS ====================

class ProductListView(BaseStockView):
    """GET/POST /api/stock/products/"""

    def get(self, request):
        try:
            actor = self.get_actor(request)
            result = ProductService.list(
                company_id=actor.company_id,
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
                search=request.GET.get("search"),
                is_manufactured=self.get_bool(request, "is_manufactured"),
                include_inactive=self.get_bool(request, "include_inactive", False),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = ProductService.create(
                self.get_actor(request),
                name=data.get("name", ""),
                sku=data.get("sku", ""),
                unit=data.get("unit", "un"),
                price=data.get("price", 0),
                stock=data.get("stock", 0),
                min_stock=data.get("min_stock", 0),
                is_manufactured=data.get("is_manufactured", False),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class ProductDetailView(BaseStockView):
    """GET/PUT /api/stock/products/<id>/"""

    def get(self, request, product_id):
        try:
            return self.success(ProductService.get(product_id, self.get_actor(request).company_id))
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, product_id):
        try:
            data = self.get_json_body(request)
            result = ProductService.update(product_id, self.get_actor(request), **data)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class ProductAdjustView(BaseStockView):
    """POST /api/stock/products/<id>/adjust/

    Either a signed `quantity` delta or an absolute `stock` value.
    """

    def post(self, request, product_id):
        try:
            data = self.get_json_body(request)
            actor = self.get_actor(request)
            if "stock" in data:
                result = StockLedgerService.set_stock(product_id, data["stock"], actor, notes=data.get("notes", ""))
            else:
                result = StockLedgerService.manual_adjust(
                    product_id, data.get("quantity"), actor, notes=data.get("notes", "")
                )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class ProductRecipeView(BaseStockView):
    """GET/PUT /api/stock/products/<id>/recipe/"""

    def get(self, request, product_id):
        try:
            return self.success(RecipeService.get_recipe(product_id, self.get_actor(request).company_id))
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, product_id):
        try:
            data = self.get_json_body(request)
            result = RecipeService.set_recipe(product_id, data.get("ingredients", []), self.get_actor(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class LowStockView(BaseStockView):
    """GET /api/stock/products/low-stock/"""

    def get(self, request):
        try:
            return self.success(StockLedgerService.get_low_stock(self.get_actor(request).company_id))
        except Exception as e:
            return handle_service_error(e)


class MovementListView(BaseStockView):
    """GET /api/stock/movements/"""

    def get(self, request):
        try:
            result = StockLedgerService.list_movements(
                company_id=self.get_actor(request).company_id,
                product_id=self.get_int(request, "product_id"),
                movement_type=request.GET.get("movement_type"),
                order_id=self.get_int(request, "order_id"),
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 50),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== PRODUCTION ====================

class ProductionListView(BaseStockView):
    """GET/POST /api/stock/production/"""

    def get(self, request):
        try:
            result = ProductionService.list(
                company_id=self.get_actor(request).company_id,
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
                status=request.GET.get("status"),
                production_type=request.GET.get("type"),
                search=request.GET.get("search"),
                date_from=parse_date(request.GET.get("date_from")),
                date_to=parse_date(request.GET.get("date_to")),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = ProductionService.create(
                self.get_actor(request),
                product_id=data.get("product_id"),
                quantity_requested=data.get("quantity_requested"),
                order_item_id=data.get("order_item_id"),
                notes=data.get("notes", ""),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class ProductionStatsView(BaseStockView):
    """GET /api/stock/production/stats/"""

    def get(self, request):
        try:
            date_from, date_to = self.get_period(request)
            result = ProductionService.stats(self.get_actor(request).company_id, date_from=date_from, date_to=date_to)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class ProductionDetailView(BaseStockView):
    """GET /api/stock/production/<id>/"""

    def get(self, request, entry_id):
        try:
            return self.success(ProductionService.get(entry_id, self.get_actor(request).company_id))
        except Exception as e:
            return handle_service_error(e)


class ProductionActionView(BaseStockView):
    """POST /api/stock/production/<id>/<action>/"""

    def post(self, request, entry_id, action):
        try:
            data = self.get_json_body(request)
            actor = self.get_actor(request)

            if action == "start":
                result = ProductionService.start(entry_id, actor)
            elif action == "complete":
                result = ProductionService.complete(
                    entry_id, actor,
                    quantity_produced=data.get("quantity_produced"),
                    notes=data.get("notes", ""),
                )
            elif action == "approve":
                result = ProductionService.approve(entry_id, actor, quantity_produced=data.get("quantity_produced"))
            elif action == "reject":
                result = ProductionService.reject(entry_id, actor, reason=data.get("reason", ""))
            else:
                return error_response(f"Unknown action: {action}", "invalid_action", 400)

            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== PACKAGING ====================

class PackagingListView(BaseStockView):
    """GET/POST /api/stock/packaging/"""

    def get(self, request):
        try:
            result = PackagingService.list(
                company_id=self.get_actor(request).company_id,
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
                status=request.GET.get("status"),
                origin=request.GET.get("origin"),
                search=request.GET.get("search"),
                order_number=request.GET.get("order_number"),
                date_from=parse_date(request.GET.get("date_from")),
                date_to=parse_date(request.GET.get("date_to")),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = PackagingService.create(
                self.get_actor(request),
                product_id=data.get("product_id"),
                quantity_to_package=data.get("quantity_to_package"),
                order_id=data.get("order_id"),
                order_item_id=data.get("order_item_id"),
                production_id=data.get("production_id"),
                notes=data.get("notes", ""),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class PackagingStatsView(BaseStockView):
    """GET /api/stock/packaging/stats/"""

    def get(self, request):
        try:
            date_from, date_to = self.get_period(request)
            result = PackagingService.stats(self.get_actor(request).company_id, date_from=date_from, date_to=date_to)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class PackagingDetailView(BaseStockView):
    """GET /api/stock/packaging/<id>/"""

    def get(self, request, entry_id):
        try:
            return self.success(PackagingService.get(entry_id, self.get_actor(request).company_id))
        except Exception as e:
            return handle_service_error(e)


class PackagingActionView(BaseStockView):
    """POST /api/stock/packaging/<id>/<action>/"""

    def post(self, request, entry_id, action):
        try:
            data = self.get_json_body(request)
            actor = self.get_actor(request)
            inputs = {
                "quantity_packaged": data.get("quantity_packaged"),
                "quality_check": data.get("quality_check"),
            }

            if action == "start":
                result = PackagingService.start(entry_id, actor, **inputs)
            elif action == "complete":
                result = PackagingService.complete(entry_id, actor, **inputs)
            elif action == "approve":
                result = PackagingService.approve(entry_id, actor, **inputs)
            elif action == "reject":
                result = PackagingService.reject(entry_id, actor, reason=data.get("reason", ""))
            else:
                return error_response(f"Unknown action: {action}", "invalid_action", 400)

            return self.success(result)
        except Exception as e:
            return handle_service_error(e)
