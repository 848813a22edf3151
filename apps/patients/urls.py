from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import PatientViewSet, EncounterViewSet

app_name = 'patients'

# Mounted at /api/ : /api/patients/ and /api/encounters/
router = DefaultRouter()
router.register(r'patients', PatientViewSet, basename='patient')
router.register(r'encounters', EncounterViewSet, basename='encounter')

urlpatterns = [
    path('', include(router.urls)),
]
