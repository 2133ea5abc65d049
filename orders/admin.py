from django.contrib import admin
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _
from django.urls import reverse
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import (
    RangeDateTimeFilter,
    RangeNumericFilter,
)
from .models import Client, Order, OrderItem, OrderItemTracking, Sale


ORDER_STATUS_COLORS = {
    'pending': 'info',
    'in_production': 'warning',
    'in_packaging': 'warning',
    'packaged': 'primary',
    'released_for_sale': 'primary',
    'sale_confirmed': 'success',
    'in_delivery': 'success',
    'delivered': 'success',
    'cancelled': 'danger',
}


class OrderItemInline(TabularInline):
    model = OrderItem
    extra = 0
    fields = ('product', 'quantity', 'unit_price', 'total_price', 'tracking_status')
    readonly_fields = ('total_price', 'tracking_status')

    @display(description=_("Fulfillment"))
    def tracking_status(self, obj):
        if not obj.pk:
            return "-"
        try:
            tracking = obj.tracking
        except OrderItemTracking.DoesNotExist:
            return _("Not routed")
        return f"{tracking.get_status_display()} ({tracking.quantity_packaged_approved}/{tracking.quantity_target})"


@admin.register(Client)
class ClientAdmin(ModelAdmin):
    list_display = ['id', 'name', 'document', 'email', 'phone', 'orders_count', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'document', 'email']
    list_filter_submit = True
    list_fullwidth = True

    @display(description=_("Orders"))
    def orders_count(self, obj):
        return obj.orders.count()


@admin.register(Order)
class OrderAdmin(ModelAdmin):
    list_display = ['order_number', 'client_name', 'status_badge', 'total_amount_display',
                    'items_count', 'sale_link', 'created_at']
    list_filter = [
        'status',
        ('created_at', RangeDateTimeFilter),
        ('total_amount', RangeNumericFilter),
    ]
    search_fields = ['order_number', 'client_name', 'client__name']
    list_filter_submit = True
    list_fullwidth = True
    inlines = [OrderItemInline]
    # Status only changes through the workflow services
    readonly_fields = ['order_number', 'status', 'total_amount', 'created_by', 'created_at', 'updated_at']

    fieldsets = (
        (_('Order Information'), {
            'fields': ('company_id', 'order_number', 'client', 'client_name', 'status', 'notes')
        }),
        (_('Financial'), {
            'fields': ('total_amount',)
        }),
        (_('Timestamps'), {
            'fields': ('created_by', 'created_at', 'updated_at')
        }),
    )

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        return ORDER_STATUS_COLORS.get(obj.status, 'info'), obj.get_status_display()

    @display(description=_("Total"), ordering='total_amount')
    def total_amount_display(self, obj):
        return f"{obj.total_amount:.2f}"

    @display(description=_("Items"))
    def items_count(self, obj):
        return obj.items.count()

    @display(description=_("Sale"))
    def sale_link(self, obj):
        sale = Sale.objects.filter(order=obj).first()
        if sale:
            url = reverse('admin:orders_sale_change', args=[sale.pk])
            return format_html('<a href="{}">{}</a>', url, sale.sale_number)
        return "-"


@admin.register(Sale)
class SaleAdmin(ModelAdmin):
    list_display = ['sale_number', 'order_link', 'client_name', 'status_badge',
                    'total_amount', 'invoice_number', 'created_at']
    list_filter = [
        'status',
        ('created_at', RangeDateTimeFilter),
        ('total_amount', RangeNumericFilter),
    ]
    search_fields = ['sale_number', 'client_name', 'order__order_number', 'invoice_number']
    list_filter_submit = True
    list_fullwidth = True
    readonly_fields = ['sale_number', 'order', 'status', 'total_amount', 'confirmed_by', 'confirmed_at',
                       'invoice_number', 'invoice_date', 'created_at', 'updated_at']

    def has_add_permission(self, request):
        return False

    @display(description=_("Order"))
    def order_link(self, obj):
        url = reverse('admin:orders_order_change', args=[obj.order_id])
        return format_html('<a href="{}">{}</a>', url, obj.order.order_number)

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        colors = {
            'pending': 'warning',
            'confirmed': 'primary',
            'invoiced': 'success',
            'cancelled': 'danger',
        }
        return colors.get(obj.status, 'info'), obj.get_status_display()
