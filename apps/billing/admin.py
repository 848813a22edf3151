from django.contrib import admin

from .models import BillingAccount, BillingItem, Invoice, Payment


class BillingItemInline(admin.TabularInline):
    model = BillingItem
    extra = 0
    readonly_fields = ['amount']


@admin.register(BillingAccount)
class BillingAccountAdmin(admin.ModelAdmin):
    list_display = [
        'account_number', 'patient', 'total_amount', 'discount_amount',
        'net_amount', 'amount_paid', 'balance', 'status', 'created_at'
    ]
    list_filter = ['status', 'discount_type', 'branch']
    search_fields = ['account_number', 'patient__first_name', 'patient__last_name']
    raw_id_fields = ['patient', 'encounter', 'discount_approved_by', 'created_by']
    readonly_fields = ['total_amount', 'net_amount', 'amount_paid', 'balance']
    inlines = [BillingItemInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['payment_number', 'account', 'amount', 'method', 'received_by', 'created_at']
    list_filter = ['method', 'branch']
    search_fields = ['payment_number', 'reference_no', 'account__account_number']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'patient', 'net_amount', 'balance', 'status', 'issued_at']
    list_filter = ['status']
    search_fields = ['invoice_number', 'account__account_number']
