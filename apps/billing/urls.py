from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    BillingAccountViewSet,
    PaymentViewSet,
    InvoiceViewSet,
    BillingDashboardView,
    DiscountReportView,
)

app_name = 'billing'

router = DefaultRouter()
router.register(r'accounts', BillingAccountViewSet, basename='billing-account')
router.register(r'payments', PaymentViewSet, basename='payment')
router.register(r'invoices', InvoiceViewSet, basename='invoice')

urlpatterns = [
    path('dashboard/', BillingDashboardView.as_view(), name='billing-dashboard'),
    path('discount-report/<slug:section>/', DiscountReportView.as_view(), name='discount-report'),
    path('', include(router.urls)),
]
