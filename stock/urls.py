from django.urls import path
from . import views

app_name = "stock"

urlpatterns = [
    path("settings/", views.FulfillmentSettingsView.as_view(), name="settings"),

    path("products/", views.ProductListView.as_view(), name="product-list"),
    path("products/low-stock/", views.LowStockView.as_view(), name="low-stock"),
    path("products/<int:product_id>/", views.ProductDetailView.as_view(), name="product-detail"),
    path("products/<int:product_id>/adjust/", views.ProductAdjustView.as_view(), name="product-adjust"),
    path("products/<int:product_id>/recipe/", views.ProductRecipeView.as_view(), name="product-recipe"),

    path("movements/", views.MovementListView.as_view(), name="movement-list"),

    path("production/", views.ProductionListView.as_view(), name="production-list"),
    path("production/stats/", views.ProductionStatsView.as_view(), name="production-stats"),
    path("production/<int:entry_id>/", views.ProductionDetailView.as_view(), name="production-detail"),
    path("production/<int:entry_id>/<str:action>/", views.ProductionActionView.as_view(), name="production-action"),

    path("packaging/", views.PackagingListView.as_view(), name="packaging-list"),
    path("packaging/stats/", views.PackagingStatsView.as_view(), name="packaging-stats"),
    path("packaging/<int:entry_id>/", views.PackagingDetailView.as_view(), name="packaging-detail"),
    path("packaging/<int:entry_id>/<str:action>/", views.PackagingActionView.as_view(), name="packaging-action"),
]
