from datetime import timedelta
from decimal import Decimal

from django.db.models import Sum, Count, F
from django.utils import timezone

from orders.models import Order, Sale
from stock.models import Product, ProductionEntry, PackagingEntry


def dashboard_callback(request, context):
    days = request.GET.get('days', '30')
    try:
        days = max(1, int(days))
    except ValueError:
        days = 30

    since = timezone.now() - timedelta(days=days)
    orders = Order.objects.filter(created_at__gte=since)

    orders_by_status = {value: 0 for value, _ in Order.Status.choices}
    for row in orders.values('status').annotate(count=Count('id')):
        orders_by_status[row['status']] = row['count']

    open_statuses = [
        ProductionEntry.Status.PENDING,
        ProductionEntry.Status.IN_PROGRESS,
        ProductionEntry.Status.COMPLETED,
    ]

    sales = Sale.objects.filter(created_at__gte=since).exclude(status=Sale.Status.CANCELLED)
    sales_total = sales.aggregate(total=Sum('total_amount'))['total'] or Decimal('0')

    low_stock = Product.objects.active().filter(
        min_stock__gt=0, stock__lte=F('min_stock')
    ).order_by('name')[:10]

    context.update({
        'days': days,
        'kpi': [
            {'title': 'Orders', 'metric': orders.count()},
            {'title': 'Open production', 'metric': ProductionEntry.objects.filter(status__in=open_statuses).count()},
            {'title': 'Open packaging', 'metric': PackagingEntry.objects.filter(status__in=open_statuses).count()},
            {'title': 'Sales', 'metric': f"{sales.count()} / {sales_total:.2f}"},
        ],
        'orders_by_status': [
            {'status': label, 'count': orders_by_status[value]}
            for value, label in Order.Status.choices
        ],
        'low_stock': [
            {'name': p.name, 'stock': p.stock, 'min_stock': p.min_stock}
            for p in low_stock
        ],
    })
    return context
