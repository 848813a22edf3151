from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import LabOrderViewSet

app_name = 'orders'

router = DefaultRouter()
router.register(r'lab-orders', LabOrderViewSet, basename='lab-order')

urlpatterns = [
    path('', include(router.urls)),
]
