from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import OpdAppointmentViewSet, AppointmentLabOrderViewSet, AppointmentPrescriptionViewSet

app_name = 'opd'

router = DefaultRouter()
router.register(r'appointments', OpdAppointmentViewSet, basename='appointment')

collection = {'get': 'list', 'post': 'create'}
member = {'get': 'retrieve', 'put': 'update', 'patch': 'partial_update', 'delete': 'destroy'}

urlpatterns = [
    path(
        'appointments/<int:appointment_id>/lab-orders/',
        AppointmentLabOrderViewSet.as_view(collection),
        name='appointment-lab-orders'
    ),
    path(
        'appointments/<int:appointment_id>/lab-orders/<int:pk>/',
        AppointmentLabOrderViewSet.as_view(member),
        name='appointment-lab-order-detail'
    ),
    path(
        'appointments/<int:appointment_id>/prescriptions/',
        AppointmentPrescriptionViewSet.as_view(collection),
        name='appointment-prescriptions'
    ),
    path(
        'appointments/<int:appointment_id>/prescriptions/<int:pk>/',
        AppointmentPrescriptionViewSet.as_view(member),
        name='appointment-prescription-detail'
    ),
    path('', include(router.urls)),
]
