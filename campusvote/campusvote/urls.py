"""
URL configuration for campusvote project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.0/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include

# API endpoints under a versioned path
api_urlpatterns = [
    path('accounts/', include('accounts.urls')),
    path('elections/', include('elections.urls')),
    path('voting/', include('voting.urls')),
]
urlpatterns = [
    # all api endpoints are prefixed with 'api/v1/'
    path('api/v1/', include(api_urlpatterns)),

    #Non-API paths like admin and auth
    path('admin/', admin.site.urls),
    path('api-auth/', include('rest_framework.urls')),
]
