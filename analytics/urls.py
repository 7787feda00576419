from django.urls import path

from . import views

app_name = "analytics"

urlpatterns = [
    path("dashboard/", views.dashboard_view, name="dashboard"),
    path("customers/", views.customers_view, name="customers"),
    path("customers/<str:phone>/orders/", views.customer_orders_view, name="customer_orders"),
    path("blacklist/", views.blacklist_view, name="blacklist"),
    path("blacklist/<str:phone>/remove/", views.blacklist_remove_view, name="blacklist_remove"),
    path("risk/assess/", views.assess_risk_view, name="assess_risk"),
]
