"""
URL configuration for country_cache project.

The countries app owns /countries* and /status; Swagger UI lives under /docs/.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse
from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

schema_view = get_schema_view(
    openapi.Info(
        title="Country Cache API",
        default_version='v1',
        description="Cached country data with exchange rates and estimated GDP",
    ),
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('docs/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('', include('countries_api.urls')),
]


def custom_404(request, exception):
    return JsonResponse({"error": "Endpoint not found, try /countries or /status"}, status=404)


def custom_500(request):
    return JsonResponse({"error": "Internal server error"}, status=500)


handler404 = "country_cache.urls.custom_404"
handler500 = "country_cache.urls.custom_500"
