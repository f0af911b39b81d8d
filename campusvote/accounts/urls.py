from django.urls import path
from . import views


urlpatterns = [
    path('login/', views.VoterLoginView.as_view(), name='voter_login'),
    path('party/login/', views.PartyLoginView.as_view(), name='party_login'),
    path('admin/login/', views.AdminAuthToken.as_view(), name='api_token_auth'),
    path('voters/', views.VoterListView.as_view(), name='voter_list'),
    path('voters/<uuid:pk>/', views.VoterDestroyView.as_view(), name='voter_delete'),
]
