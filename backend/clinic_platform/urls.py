# clinic_platform/urls.py

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/",   include("scheduling.urls")),
    path("api/",   include("teleconsultation.urls")),
    path("api/",   include("revenue.urls")),
]
