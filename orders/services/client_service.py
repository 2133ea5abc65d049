from typing import Dict, Any
from django.db.models import Q

from orders.models import Client
from stock.services.base_service import (
    Actor, BaseService, success_response, paginate_queryset, ValidationError
)


class ClientService(BaseService):
    model = Client

    @classmethod
    def serialize(cls, client: Client) -> Dict[str, Any]:
        return {
            "id": client.id,
            "name": client.name,
            "document": client.document,
            "email": client.email,
            "phone": client.phone,
            "is_active": client.is_active,
        }

    @classmethod
    def list(cls, company_id: str, page: int = 1, per_page: int = 20, search: str = None) -> Dict[str, Any]:
        queryset = Client.objects.for_company(company_id).active()
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(document__icontains=search) | Q(email__icontains=search)
            )

        clients, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "clients": [cls.serialize(c) for c in clients],
            "pagination": pagination,
        })

    @classmethod
    def create(cls, actor: Actor, name: str, document: str = "", email: str = "", phone: str = "") -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", "name")

        client = Client.objects.create(
            company_id=actor.company_id,
            name=name,
            document=document or "",
            email=email or "",
            phone=phone or "",
        )

        return success_response({
            "id": client.id,
            "client": cls.serialize(client),
        }, f"Client {client.name} created")
