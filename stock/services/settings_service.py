from typing import Dict, Any
from django.db import transaction

from stock.models import FulfillmentSettings
from stock.services.base_service import BaseService, ValidationError


class FulfillmentSettingsService(BaseService):
    model = FulfillmentSettings

    BOOLEAN_FIELDS = (
        "clamp_negative_stock",
        "low_stock_alert_enabled",
        "auto_route_on_create",
        "split_partial_stock",
        "deduct_ingredients_on_production",
        "accept_packaging_shortfall",
    )

    @classmethod
    def load(cls) -> FulfillmentSettings:
        return FulfillmentSettings.load()

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        settings = cls.load()
        data = {field: getattr(settings, field) for field in cls.BOOLEAN_FIELDS}
        data["updated_at"] = settings.updated_at.isoformat()
        return data

    @classmethod
    @transaction.atomic
    def update(cls, **kwargs) -> Dict[str, Any]:
        settings = cls.load()

        unknown = set(kwargs) - set(cls.BOOLEAN_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown settings: {sorted(unknown)}. Valid: {list(cls.BOOLEAN_FIELDS)}",
                sorted(unknown)[0],
            )

        update_fields = ["updated_at"]
        for field, value in kwargs.items():
            if not isinstance(value, bool):
                raise ValidationError(f"{field} must be true or false", field)
            setattr(settings, field, value)
            update_fields.append(field)

        settings.save(update_fields=update_fields)

        return {
            "message": "Settings updated",
            "settings": cls.get_all(),
        }
