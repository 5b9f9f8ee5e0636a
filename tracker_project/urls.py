from django.urls import include, path

from tracker.views import LandingPageView, LogoutView

urlpatterns = [
    path("", LandingPageView.as_view(), name="home"),
    path("logout/", LogoutView.as_view(), name="logout"),
    path("", include("tracker.urls")),
]
