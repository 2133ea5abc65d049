"""
Orders, order items, per-item fulfillment tracking and sales.
"""

from decimal import Decimal

from django.db import models

from stock.scoping import CompanyScopedMixin


class Client(CompanyScopedMixin):
    name = models.CharField(max_length=200)
    document = models.CharField(max_length=30, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=30, blank=True, default="")
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Order(CompanyScopedMixin):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        IN_PRODUCTION = "in_production", "In Production"
        IN_PACKAGING = "in_packaging", "In Packaging"
        PACKAGED = "packaged", "Packaged"
        RELEASED_FOR_SALE = "released_for_sale", "Released for Sale"
        SALE_CONFIRMED = "sale_confirmed", "Sale Confirmed"
        IN_DELIVERY = "in_delivery", "In Delivery"
        DELIVERED = "delivered", "Delivered"
        CANCELLED = "cancelled", "Cancelled"

    order_number = models.CharField(max_length=50, unique=True)
    client = models.ForeignKey(
        Client,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    client_name = models.CharField(max_length=200, blank=True, default="")
    status = models.CharField(
        max_length=30, choices=Status.choices, default=Status.PENDING, db_index=True
    )
    total_amount = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    notes = models.TextField(blank=True, default="")
    created_by = models.CharField(max_length=254, blank=True, default="")

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.order_number

    def recalculate_total(self) -> Decimal:
        self.total_amount = sum(
            (item.total_price for item in self.items.all()), Decimal("0")
        )
        return self.total_amount


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        "stock.Product", on_delete=models.PROTECT, related_name="order_items"
    )
    product_name = models.CharField(max_length=200)
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    unit_price = models.DecimalField(max_digits=15, decimal_places=2)
    total_price = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.product_name} x {self.quantity}"

    def save(self, *args, **kwargs):
        self.total_price = (
            Decimal(str(self.quantity)) * Decimal(str(self.unit_price))
        ).quantize(Decimal("0.01"))
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "quantity" in update_fields:
            kwargs["update_fields"] = set(update_fields) | {"total_price"}
        super().save(*args, **kwargs)


class OrderItemTracking(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        READY_FOR_PACKAGING = "ready_for_packaging", "Ready for Packaging"
        PARTIAL_PACKAGING = "partial_packaging", "Partial Packaging"
        READY_FOR_SALE = "ready_for_sale", "Ready for Sale"

    order_item = models.OneToOneField(
        OrderItem, on_delete=models.CASCADE, related_name="tracking"
    )
    quantity_target = models.DecimalField(max_digits=15, decimal_places=4)
    quantity_from_stock = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    quantity_from_production = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    quantity_produced_approved = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    quantity_packaged_approved = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    status = models.CharField(
        max_length=30, choices=Status.choices, default=Status.PENDING
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "order item tracking"
        verbose_name_plural = "order item tracking"

    def __str__(self):
        return f"{self.order_item} [{self.status}]"

    @property
    def is_fully_packaged(self) -> bool:
        return self.quantity_packaged_approved >= self.quantity_target


class Sale(CompanyScopedMixin):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        INVOICED = "invoiced", "Invoiced"
        CANCELLED = "cancelled", "Cancelled"

    sale_number = models.CharField(max_length=50, unique=True)
    # One sale per order, enforced by the database
    order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name="sale")
    client = models.ForeignKey(
        Client,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sales",
    )
    client_name = models.CharField(max_length=200, blank=True, default="")
    total_amount = models.DecimalField(max_digits=15, decimal_places=2)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True
    )
    confirmed_by = models.CharField(max_length=254, blank=True, default="")
    confirmed_at = models.DateTimeField(null=True, blank=True)
    invoice_number = models.CharField(max_length=50, blank=True, default="")
    invoice_date = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.sale_number
