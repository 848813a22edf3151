from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from django.views.generic import RedirectView

# ✅ Import drf-spectacular views
from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView
)

urlpatterns = [
    # Root URL - redirect to API docs
    path('', RedirectView.as_view(url='/api/docs/', permanent=False), name='home'),

    path('admin/', admin.site.urls),

    # API endpoints
    path('api/auth/', include('apps.accounts.urls')),
    path('api/hospital/', include('apps.hospital.urls')),
    path('api/master-data/', include('apps.masterdata.urls')),
    path('api/', include('apps.patients.urls')),
    path('api/doctors/', include('apps.doctors.urls')),
    path('api/inpatient/', include('apps.inpatient.urls')),
    path('api/emergency/', include('apps.emergency.urls')),
    path('api/opd/', include('apps.opd.urls')),
    path('api/pharmacy/', include('apps.pharmacy.urls')),
    path('api/orders/', include('apps.orders.urls')),
    path('api/billing/', include('apps.billing.urls')),
    path('api/services/', include('apps.services.urls')),
    path('api/reports/', include('apps.reports.urls')),

    # ✅ API Documentation endpoints
    # OpenAPI schema
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),

    # Swagger UI (Interactive documentation)
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),

    # ReDoc UI (Alternative documentation)
    path('api/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
]

# Serve static and media files in development
if settings.DEBUG:
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
