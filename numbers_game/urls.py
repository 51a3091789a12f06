# numbers_game/urls.py
from django.contrib import admin
from django.urls import path

# The HTTP API lives in a separate service; only the admin site is served here.
urlpatterns = [
    path("admin/", admin.site.urls),
]
