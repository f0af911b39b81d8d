from django.urls import path
from rest_framework.routers import SimpleRouter

from .views import BallotView, CurrentElectionView, ElectionCreationView

app_name = "elections"

router = SimpleRouter()
router.register(r"", ElectionCreationView, basename="election")


# named paths come first so the router's detail route does not swallow them
urlpatterns = [
    path("current/", CurrentElectionView.as_view(), name="current-election"),
    path("ballot/", BallotView.as_view(), name="ballot"),
]

urlpatterns += router.urls
