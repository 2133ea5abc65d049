from django.contrib import admin
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _
from django.urls import reverse
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import (
    RangeDateFilter,
    RangeDateTimeFilter,
    RangeNumericFilter,
)
from .models import Product, RecipeIngredient, StockMovement, ProductionEntry, PackagingEntry, FulfillmentSettings


SHOP_FLOOR_COLORS = {
    'pending': 'info',
    'in_progress': 'warning',
    'completed': 'primary',
    'approved': 'success',
    'rejected': 'danger',
}


class RecipeIngredientInline(TabularInline):
    model = RecipeIngredient
    fk_name = 'product'
    extra = 0
    fields = ('ingredient', 'quantity', 'ingredient_stock')
    readonly_fields = ('ingredient_stock',)
    autocomplete_fields = ('ingredient',)

    @display(description=_("In Stock"))
    def ingredient_stock(self, obj):
        if obj.pk:
            return f"{obj.ingredient.stock} {obj.ingredient.unit}"
        return "-"


@admin.register(Product)
class ProductAdmin(ModelAdmin):
    list_display = ['id', 'name', 'sku', 'stock_display', 'min_stock', 'manufactured_badge', 'active_badge']
    list_filter = [
        'is_manufactured',
        'is_active',
        ('stock', RangeNumericFilter),
        ('created_at', RangeDateFilter),
    ]
    search_fields = ['name', 'sku']
    list_filter_submit = True
    list_fullwidth = True
    inlines = [RecipeIngredientInline]
    # Stock only moves through the ledger
    readonly_fields = ['stock', 'created_at', 'updated_at']

    fieldsets = (
        (_('Product Information'), {
            'fields': ('company_id', 'name', 'sku', 'unit', 'is_manufactured', 'is_active')
        }),
        (_('Pricing & Stock'), {
            'fields': ('price', 'stock', 'min_stock')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at')
        }),
    )

    @display(description=_("Stock"), ordering='stock')
    def stock_display(self, obj):
        if obj.is_low_stock:
            return format_html('<span style="color:#dc2626">{} {}</span>', obj.stock, obj.unit)
        return f"{obj.stock} {obj.unit}"

    @display(description=_("Type"), label=True)
    def manufactured_badge(self, obj):
        if obj.is_manufactured:
            return 'primary', _("Manufactured")
        return 'info', _("Bought in")

    @display(description=_("Status"), label=True)
    def active_badge(self, obj):
        if obj.is_active:
            return 'success', _("Active")
        return 'danger', _("Inactive")


@admin.register(StockMovement)
class StockMovementAdmin(ModelAdmin):
    list_display = ['movement_number', 'product', 'type_badge', 'quantity', 'applied_quantity',
                    'quantity_after', 'order_link', 'user_email', 'created_at']
    list_filter = [
        'movement_type',
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['movement_number', 'product__name', 'order__order_number']
    list_filter_submit = True
    list_fullwidth = True

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(description=_("Type"), label=True)
    def type_badge(self, obj):
        colors = {
            'adjustment_plus': 'success',
            'adjustment_minus': 'warning',
            'sale_out': 'info',
            'production_out': 'warning',
            'production_in': 'success',
            'return_in': 'primary',
        }
        return colors.get(obj.movement_type, 'info'), obj.get_movement_type_display()

    @display(description=_("Order"))
    def order_link(self, obj):
        if obj.order_id:
            url = reverse('admin:orders_order_change', args=[obj.order_id])
            return format_html('<a href="{}">{}</a>', url, obj.order.order_number)
        return "-"


@admin.register(ProductionEntry)
class ProductionEntryAdmin(ModelAdmin):
    list_display = ['production_number', 'product', 'type_badge', 'quantity_requested',
                    'quantity_produced', 'status_badge', 'approved_by', 'created_at']
    list_filter = [
        'status',
        ('quantity_requested', RangeNumericFilter),
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['production_number', 'product__name', 'order_item__order__order_number']
    list_filter_submit = True
    list_fullwidth = True
    readonly_fields = ['production_number', 'order_item', 'status', 'start_date', 'completion_date',
                       'approved_at', 'approved_by', 'created_at', 'updated_at']

    @display(description=_("Type"), label=True)
    def type_badge(self, obj):
        if obj.is_internal:
            return 'info', _("Internal")
        return 'primary', _("Order")

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        return SHOP_FLOOR_COLORS.get(obj.status, 'info'), obj.get_status_display()


@admin.register(PackagingEntry)
class PackagingEntryAdmin(ModelAdmin):
    list_display = ['packaging_number', 'product', 'origin_badge', 'client_name', 'quantity_to_package',
                    'quantity_packaged', 'status_badge', 'created_at']
    list_filter = [
        'status',
        'quality_check',
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['packaging_number', 'product__name', 'client_name', 'order__order_number']
    list_filter_submit = True
    list_fullwidth = True
    readonly_fields = ['packaging_number', 'production', 'order', 'order_item', 'status',
                       'packaged_at', 'packaged_by', 'approved_at', 'approved_by', 'created_at', 'updated_at']

    @display(description=_("Origin"), label=True)
    def origin_badge(self, obj):
        if obj.origin == 'production':
            return 'primary', _("Production")
        return 'info', _("Stock")

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        return SHOP_FLOOR_COLORS.get(obj.status, 'info'), obj.get_status_display()


@admin.register(FulfillmentSettings)
class FulfillmentSettingsAdmin(ModelAdmin):
    list_display = ['id', 'clamp_negative_stock', 'split_partial_stock', 'auto_route_on_create', 'updated_at']

    def has_add_permission(self, request):
        return not FulfillmentSettings.objects.exists()

    def has_delete_permission(self, request, obj=None):
        return False
