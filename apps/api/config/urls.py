"""
URL configuration for the Jeewaka API.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)
from apps.core.observability.health import HealthzView, ReadyzView

urlpatterns = [
    # Health checks (no auth required)
    path('healthz', HealthzView.as_view(), name='healthz'),
    path('readyz', ReadyzView.as_view(), name='readyz'),

    # Admin
    path('admin/', admin.site.urls),

    path('api/', include('apps.core.urls')),  # JWT token endpoints
    path('api/v1/', include('apps.authz.urls')),  # Registration, current user, roles
    path('api/v1/', include('apps.records.urls')),  # Before the doctors/patients routers (nested paths)
    path('api/v1/', include('apps.doctors.urls')),  # Doctors, hospitals, verification
    path('api/v1/', include('apps.patients.urls')),
    path('api/v1/', include('apps.scheduling.urls')),  # Sessions, slots, booking, appointments
    path('api/v1/', include('apps.payments.urls')),  # Intents, webhook, history, earnings
    path('api/v1/', include('apps.finance.urls')),  # Admin/doctor income analytics
    path('api/v1/', include('apps.ratings.urls')),
    path('api/v1/', include('apps.assistant.urls')),  # Gemini medical assistant

    # API Schema
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/schema/swagger-ui/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/schema/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
]

# Debug toolbar
if settings.DEBUG:
    try:
        import debug_toolbar
        urlpatterns = [
            path('__debug__/', include(debug_toolbar.urls)),
        ] + urlpatterns
    except ImportError:
        pass

    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
