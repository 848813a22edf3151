from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import PhysicianViewSet

app_name = 'doctors'

router = DefaultRouter()
router.register(r'physicians', PhysicianViewSet, basename='physician')

urlpatterns = [
    path('', include(router.urls)),
]
