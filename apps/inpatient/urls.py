from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import InpatientViewSet, BedOccupancyView, BedReconcileView

app_name = 'inpatient'

router = DefaultRouter()
router.register(r'encounters', InpatientViewSet, basename='inpatient-encounter')

urlpatterns = [
    path('beds/occupancy/', BedOccupancyView.as_view(), name='bed-occupancy'),
    path('beds/reconcile/', BedReconcileView.as_view(), name='bed-reconcile'),
    path('', include(router.urls)),
]
