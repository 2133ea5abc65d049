"""
Stock Services - catalog, stock ledger and shop-floor business logic

Usage:
    from stock.services import OrderRoutingService, PackagingService

    # Split an order between stock and production
    result = OrderRoutingService.route_order(order_id=1, actor=actor)

    # Approve packaging; releases the order for sale once everything is in
    PackagingService.approve(entry_id=3, actor=actor)
"""

# Base utilities
from stock.services.base_service import (
    Actor,
    ServiceError,
    ValidationError,
    NotFoundError,
    BusinessRuleError,
    InsufficientStockError,
    success_response,
    paginate_queryset,
    to_decimal,
    round_decimal,
    generate_number,
    get_date_range,
    parse_date,
    BaseService,
)

# Settings
from .settings_service import FulfillmentSettingsService

# Catalog & ledger
from .product_service import ProductService
from .stock_service import StockLedgerService
from .recipe_service import RecipeService

# Shop floor
from .packaging_service import PackagingService
from .production_service import ProductionService

# Order integration
from .order_service import OrderRoutingService


__all__ = [
    # Base
    "Actor",
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "BusinessRuleError",
    "InsufficientStockError",
    "success_response",
    "paginate_queryset",
    "to_decimal",
    "round_decimal",
    "generate_number",
    "get_date_range",
    "parse_date",
    "BaseService",

    # Settings
    "FulfillmentSettingsService",

    # Catalog & ledger
    "ProductService",
    "StockLedgerService",
    "RecipeService",

    # Shop floor
    "PackagingService",
    "ProductionService",

    # Order integration
    "OrderRoutingService",
]
