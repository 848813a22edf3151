from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import AdminDashboardView, ScheduledReportViewSet, ReportRunViewSet

app_name = 'reports'

router = DefaultRouter()
router.register(r'scheduled', ScheduledReportViewSet, basename='scheduled-report')
router.register(r'runs', ReportRunViewSet, basename='report-run')

urlpatterns = [
    path('admin-dashboard/', AdminDashboardView.as_view(), name='admin-dashboard'),
    path('', include(router.urls)),
]
