from django.urls import path

from . import views

app_name = "tracker"

urlpatterns = [
    path("dashboard/", views.DashboardView.as_view(), name="dashboard"),
    path("subscriptions/", views.SubscriptionListView.as_view(), name="subscription-list"),
    path("subscriptions/add/", views.SubscriptionCreateView.as_view(), name="subscription-add"),
    path("subscriptions/<str:pk>/edit/", views.SubscriptionUpdateView.as_view(), name="subscription-edit"),
    path("subscriptions/<str:pk>/delete/", views.SubscriptionDeleteView.as_view(), name="subscription-delete"),
    path("subscriptions/<str:pk>/renew/", views.SubscriptionRenewView.as_view(), name="subscription-renew"),
    path("credits/", views.CreditListView.as_view(), name="credit-list"),
    path("credits/add/", views.CreditCreateView.as_view(), name="credit-add"),
    path("credits/<str:pk>/edit/", views.CreditUpdateView.as_view(), name="credit-edit"),
    path("credits/<str:pk>/delete/", views.CreditDeleteView.as_view(), name="credit-delete"),
    path("credits/<str:pk>/usage/", views.CreditUsageView.as_view(), name="credit-usage"),
    path(
        "history/<str:kind>/<str:pk>/",
        views.HistoryView.as_view(),
        name="history",
    ),
]
