from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    HospitalConfigView,
    BranchViewSet,
    SystemSettingListView,
    SystemSettingDetailView,
)

app_name = 'hospital'

router = DefaultRouter()
router.register(r'branches', BranchViewSet, basename='branch')

urlpatterns = [
    path('config/', HospitalConfigView.as_view(), name='config'),
    path('settings/', SystemSettingListView.as_view(), name='settings'),
    path('settings/<str:key>/', SystemSettingDetailView.as_view(), name='setting-detail'),
    path('', include(router.urls)),
]
