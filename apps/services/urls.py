from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import ServiceCatalogueViewSet, ServiceCategoryListView, ServiceCategoryDetailView

app_name = 'services'

router = DefaultRouter()
router.register(r'catalogue', ServiceCatalogueViewSet, basename='service')

urlpatterns = [
    path('categories/', ServiceCategoryListView.as_view(), name='service-categories'),
    path('categories/<slug:key>/', ServiceCategoryDetailView.as_view(), name='service-category-detail'),
    path('', include(router.urls)),
]
