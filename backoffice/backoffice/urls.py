"""
URL configuration for the property back office.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # Apps
    path('property/', include('apps.property.urls')),
]
