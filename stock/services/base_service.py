from typing import Dict, Any, Optional, List, Tuple
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, timedelta
from django.conf import settings
from django.db.models import Model
from django.utils import timezone


class ServiceError(Exception):
    """Base for errors raised on purpose. `code` and `status` go on the wire."""
    code = "service_error"
    status = 400

    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    code = "validation_error"

    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, {"field": field, **(details or {})})
        self.field = field


class NotFoundError(ServiceError):
    code = "not_found"
    status = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            {"resource": resource, "identifier": str(identifier)}
        )


class BusinessRuleError(ServiceError):
    code = "business_rule"

    def __init__(self, message: str, rule: str = None):
        super().__init__(message, {"rule": rule})
        self.rule = rule


class InsufficientStockError(ServiceError):
    code = "insufficient_stock"

    def __init__(self, product_name: str, required: Decimal, available: Decimal):
        super().__init__(
            f"Not enough {product_name} in stock: need {required}, have {available}",
            {"product": product_name, "required": str(required), "available": str(available)}
        )


@dataclass
class Actor:
    """Who is acting and on behalf of which company."""
    user_id: Optional[int] = None
    email: str = ""
    company_id: str = ""

    @classmethod
    def from_request(cls, request) -> "Actor":
        user = request.user
        company_id = getattr(user, "company_id", None) or settings.DEFAULT_COMPANY_ID
        return cls(
            user_id=user.pk,
            email=getattr(user, "email", "") or user.get_username(),
            company_id=str(company_id),
        )

    @classmethod
    def system(cls, company_id: str = None) -> "Actor":
        return cls(email="system", company_id=company_id or settings.DEFAULT_COMPANY_ID)


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def paginate_queryset(queryset, page: int = 1, per_page: int = 20) -> Tuple[List, Dict]:
    page = max(1, page)
    per_page = min(max(1, per_page), 100)

    total = queryset.count()
    total_pages = (total + per_page - 1) // per_page

    offset = (page - 1) * per_page
    items = list(queryset[offset:offset + per_page])

    return items, {
        "page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1
    }


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None:
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def require_positive(value: Any, field: str) -> Decimal:
    quantity = to_decimal(value, None)
    if quantity is None or not quantity.is_finite() or quantity <= 0:
        raise ValidationError(f"{field} must be greater than 0", field)
    return quantity


def require_id(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field)


def round_decimal(value: Decimal, places: int = 4) -> Decimal:
    if value is None:
        return Decimal("0")
    quantize_str = "0." + "0" * places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def generate_number(prefix: str, model_class: Model, field: str = "order_number") -> str:
    today = timezone.now()
    date_part = today.strftime("%Y%m%d")
    filter_kwargs = {f"{field}__startswith": f"{prefix}-{date_part}"}
    last = model_class.objects.filter(**filter_kwargs).order_by(f"-{field}").first()

    if last:
        last_num = getattr(last, field)
        try:
            seq = int(last_num.split("-")[-1]) + 1
        except ValueError:
            seq = 1
    else:
        seq = 1

    return f"{prefix}-{date_part}-{seq:04d}"


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD", "date")


def get_date_range(period: str) -> Tuple[date, date]:
    today = timezone.localdate()

    if period == "today":
        return today, today
    elif period == "yesterday":
        return today - timedelta(days=1), today - timedelta(days=1)
    elif period == "this_week":
        start = today - timedelta(days=today.weekday())
        return start, today
    elif period == "this_month":
        return today.replace(day=1), today
    elif period.startswith("last_") and period.endswith("_days"):
        try:
            days = int(period.replace("last_", "").replace("_days", ""))
            return today - timedelta(days=days), today
        except ValueError:
            pass

    return today, today


class BaseService:
    model = None

    @classmethod
    def scoped(cls, company_id: str = None):
        queryset = cls.model.objects.all()
        if company_id:
            queryset = queryset.filter(company_id=company_id)
        return queryset

    @classmethod
    def get_by_id(cls, id: int, company_id: str = None) -> Optional[Model]:
        return cls.scoped(company_id).filter(id=id).first()

    @classmethod
    def get_or_404(cls, id: int, company_id: str = None) -> Model:
        obj = cls.get_by_id(id, company_id)
        if not obj:
            raise NotFoundError(cls.model._meta.verbose_name.capitalize(), id)
        return obj

    @classmethod
    def lock_or_404(cls, id: int, company_id: str = None) -> Model:
        obj = cls.scoped(company_id).select_for_update().filter(id=id).first()
        if not obj:
            raise NotFoundError(cls.model._meta.verbose_name.capitalize(), id)
        return obj
