from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import DrugFormularyViewSet, StockMovementViewSet, PrescriptionQueueViewSet

app_name = 'pharmacy'

router = DefaultRouter()
router.register(r'drugs', DrugFormularyViewSet, basename='drug')
router.register(r'stock-movements', StockMovementViewSet, basename='stock-movement')
router.register(r'prescriptions', PrescriptionQueueViewSet, basename='prescription')

urlpatterns = [
    path('', include(router.urls)),
]
