from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    MasterDataOptionsView,
    MasterDataCacheStatsView,
    DepartmentViewSet,
    WardViewSet,
    BedViewSet,
    LabTestCategoryViewSet,
    LabTestViewSet,
    MasterDataAuditLogViewSet,
)

app_name = 'masterdata'

router = DefaultRouter()
router.register(r'departments', DepartmentViewSet, basename='department')
router.register(r'wards', WardViewSet, basename='ward')
router.register(r'beds', BedViewSet, basename='bed')
router.register(r'test-categories', LabTestCategoryViewSet, basename='test-category')
router.register(r'tests', LabTestViewSet, basename='test')
router.register(r'audit-logs', MasterDataAuditLogViewSet, basename='audit-log')

urlpatterns = [
    path('stats/', MasterDataCacheStatsView.as_view(), name='stats'),
    path('<str:option_type>/options/', MasterDataOptionsView.as_view(), name='options'),
    path('', include(router.urls)),
]
