from django.db import models
from django.db.models import Q

from stock.scoping import CompanyScopedMixin


class Product(CompanyScopedMixin):
    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=50, blank=True, default="")
    unit = models.CharField(max_length=20, default="un")
    price = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    stock = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    min_stock = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        default=0,
        help_text="Low-stock threshold",
    )
    is_manufactured = models.BooleanField(
        default=False,
        help_text="Can be produced in-house from a recipe",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["company_id", "sku"],
                condition=~Q(sku=""),
                name="unique_product_sku_per_company",
            ),
        ]

    def __str__(self):
        return self.name

    @property
    def is_low_stock(self) -> bool:
        return self.min_stock > 0 and self.stock <= self.min_stock


class RecipeIngredient(models.Model):
    product = models.ForeignKey(
        Product, on_delete=models.CASCADE, related_name="recipe_lines"
    )
    ingredient = models.ForeignKey(
        Product, on_delete=models.PROTECT, related_name="used_in_recipes"
    )
    quantity = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        help_text="Ingredient quantity consumed per unit of product",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(
                fields=["product", "ingredient"], name="unique_recipe_ingredient"
            ),
        ]

    def __str__(self):
        return f"{self.product.name}: {self.quantity} x {self.ingredient.name}"


class StockMovement(CompanyScopedMixin):
    class MovementType(models.TextChoices):
        ADJUSTMENT_PLUS = "ADJUSTMENT_PLUS", "Adjustment +"
        ADJUSTMENT_MINUS = "ADJUSTMENT_MINUS", "Adjustment −"
        SALE_OUT = "SALE_OUT", "Sale Out"
        PRODUCTION_OUT = "PRODUCTION_OUT", "Production Out"
        PRODUCTION_IN = "PRODUCTION_IN", "Production In"
        RETURN_IN = "RETURN_IN", "Return In"

    movement_number = models.CharField(max_length=50, unique=True)
    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, related_name="movements"
    )
    movement_type = models.CharField(
        max_length=30, choices=MovementType.choices, db_index=True
    )

    # Signed: negative for outgoing movements
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    applied_quantity = models.DecimalField(max_digits=15, decimal_places=4)
    quantity_before = models.DecimalField(max_digits=15, decimal_places=4)
    quantity_after = models.DecimalField(max_digits=15, decimal_places=4)

    reference_type = models.CharField(max_length=50, blank=True, default="")
    reference_id = models.PositiveIntegerField(null=True, blank=True)
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_movements",
    )

    user_email = models.CharField(max_length=254, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["product", "created_at"]),
            models.Index(fields=["reference_type", "reference_id"]),
        ]

    def __str__(self):
        return f"{self.movement_number} | {self.get_movement_type_display()}"

    @property
    def was_clamped(self) -> bool:
        return self.applied_quantity != self.quantity


class ProductionEntry(CompanyScopedMixin):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        IN_PROGRESS = "in_progress", "In Progress"
        COMPLETED = "completed", "Completed"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    production_number = models.CharField(max_length=50, unique=True)
    order_item = models.ForeignKey(
        "orders.OrderItem",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="production_entries",
        help_text="Empty for internal (stock) production",
    )
    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, related_name="production_entries"
    )
    quantity_requested = models.DecimalField(max_digits=15, decimal_places=4)
    quantity_produced = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True
    )
    start_date = models.DateTimeField(null=True, blank=True)
    completion_date = models.DateTimeField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.CharField(max_length=254, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        verbose_name = "production entry"
        verbose_name_plural = "production entries"
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.production_number

    @property
    def is_internal(self) -> bool:
        return self.order_item_id is None

    @property
    def production_type(self) -> str:
        return "internal" if self.is_internal else "order"


class PackagingEntry(CompanyScopedMixin):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        IN_PROGRESS = "in_progress", "In Progress"
        COMPLETED = "completed", "Completed"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    packaging_number = models.CharField(max_length=50, unique=True)
    production = models.ForeignKey(
        ProductionEntry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="packaging_entries",
        help_text="Empty when packaged straight from stock",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="packaging_entries",
    )
    order_item = models.ForeignKey(
        "orders.OrderItem",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="packaging_entries",
    )
    client = models.ForeignKey(
        "orders.Client",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="packaging_entries",
    )
    client_name = models.CharField(max_length=200, blank=True, default="")
    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, related_name="packaging_entries"
    )
    quantity_to_package = models.DecimalField(max_digits=15, decimal_places=4)
    quantity_packaged = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True
    )
    quality_check = models.BooleanField(default=False)
    packaged_at = models.DateTimeField(null=True, blank=True)
    packaged_by = models.CharField(max_length=254, blank=True, default="")
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.CharField(max_length=254, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        verbose_name = "packaging entry"
        verbose_name_plural = "packaging entries"
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return self.packaging_number

    @property
    def origin(self) -> str:
        return "production" if self.production_id else "stock"


class FulfillmentSettings(models.Model):
    """
    Singleton settings table. Use FulfillmentSettings.load() to get the instance.
    """

    # Stock
    clamp_negative_stock = models.BooleanField(
        default=True,
        help_text="Clamp deductions at zero instead of refusing them",
    )
    low_stock_alert_enabled = models.BooleanField(default=True)

    # Routing
    auto_route_on_create = models.BooleanField(default=False)
    split_partial_stock = models.BooleanField(
        default=True,
        help_text="Package the available stock and produce only the shortfall",
    )
    deduct_ingredients_on_production = models.BooleanField(default=True)

    # Packaging
    accept_packaging_shortfall = models.BooleanField(
        default=True,
        help_text="Reduce an item to its approved quantity once no work is left for it",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "fulfillment settings"
        verbose_name_plural = "fulfillment settings"

    def save(self, *args, **kwargs):
        # Enforce singleton: always use pk=1
        self.pk = 1
        super().save(*args, **kwargs)

    @classmethod
    def load(cls):
        obj, _ = cls.objects.get_or_create(pk=1)
        return obj

    def __str__(self):
        return "Fulfillment Settings"
