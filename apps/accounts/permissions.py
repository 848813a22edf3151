from rest_framework import permissions

from common.permissions import (
    in_any_group,
    ADMINISTRATOR,
    DOCTOR,
    NURSE,
    RECEPTIONIST,
    PHARMACIST,
    LAB_TECHNICIAN,
    ACCOUNTANT,
)


class GroupPermission(permissions.BasePermission):
    """Allow access to members of ``allowed_groups``"""

    allowed_groups = []

    def has_permission(self, request, view):
        return in_any_group(request.user, self.allowed_groups)


class IsAdministrator(GroupPermission):
    """Allow access only to administrators"""
    allowed_groups = [ADMINISTRATOR]


class IsDoctor(GroupPermission):
    """Allow access only to doctors"""
    allowed_groups = [DOCTOR]


class IsDoctorOrAdministrator(GroupPermission):
    """Clinical writes: doctors and administrators"""
    allowed_groups = [ADMINISTRATOR, DOCTOR]


class IsClinicalStaff(GroupPermission):
    """Emergency and ward staff"""
    allowed_groups = [ADMINISTRATOR, DOCTOR, NURSE]


class IsFrontDesk(GroupPermission):
    """Registration and appointment desk"""
    allowed_groups = [ADMINISTRATOR, RECEPTIONIST, NURSE, DOCTOR]


class IsPharmacist(GroupPermission):
    """Allow access only to pharmacists"""
    allowed_groups = [ADMINISTRATOR, PHARMACIST]


class IsLabTechnician(GroupPermission):
    """Allow access only to lab technicians"""
    allowed_groups = [ADMINISTRATOR, LAB_TECHNICIAN]


class IsFinanceStaff(GroupPermission):
    """Billing dashboards and discount reports"""
    allowed_groups = [ADMINISTRATOR, ACCOUNTANT]


class IsAdministratorOrReadOnly(permissions.BasePermission):
    """Allow administrators to edit, other authenticated users to view"""

    def has_permission(self, request, view):
        if not (request.user and request.user.is_authenticated):
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return in_any_group(request.user, [ADMINISTRATOR])


class IsBillingStaff(GroupPermission):
    """Billing counter: accounts, items and payments"""
    allowed_groups = [ADMINISTRATOR, ACCOUNTANT, RECEPTIONIST]
