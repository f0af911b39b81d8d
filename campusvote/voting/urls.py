from django.urls import path

from .views import BallotCreateView, LiveResultsView, MyVotesView, StatsView

app_name = "voting"

urlpatterns = [
    path("ballot/", BallotCreateView.as_view(), name="cast_ballot"),
    path("my-votes/", MyVotesView.as_view(), name="my_votes"),
    path("live/", LiveResultsView.as_view(), name="live_results"),
    path("stats/", StatsView.as_view(), name="stats"),
]
