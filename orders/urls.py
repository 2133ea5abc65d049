from django.urls import path
from orders.views import client_views, order_views, sale_views


app_name = 'orders'


urlpatterns = [
    path('clients/', client_views.clients, name='clients'),

    path('orders/', order_views.orders, name='orders'),
    path('orders/<int:order_id>/', order_views.get_order, name='order-detail'),
    path('orders/<int:order_id>/route/', order_views.route_order, name='order-route'),
    path('orders/<int:order_id>/<str:action>/', order_views.order_action, name='order-action'),

    path('sales/', sale_views.list_sales, name='sales'),
    path('sales/<int:sale_id>/', sale_views.get_sale, name='sale-detail'),
    path('sales/<int:sale_id>/<str:action>/', sale_views.sale_action, name='sale-action'),
]
