from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import EmergencyPatientViewSet

app_name = 'emergency'

router = DefaultRouter()
router.register(r'patients', EmergencyPatientViewSet, basename='emergency-patient')

urlpatterns = [
    path('', include(router.urls)),
]
