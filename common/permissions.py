"""
Group based role checks.

Roles are plain Django auth groups; the names below are the ones created by
the ``seed_auth_groups`` management command.
"""

ADMINISTRATOR = 'Administrator'
DOCTOR = 'Doctor'
NURSE = 'Nurse'
RECEPTIONIST = 'Receptionist'
PHARMACIST = 'Pharmacist'
LAB_TECHNICIAN = 'Lab Technician'
ACCOUNTANT = 'Accountant'

ALL_ROLES = [
    ADMINISTRATOR,
    DOCTOR,
    NURSE,
    RECEPTIONIST,
    PHARMACIST,
    LAB_TECHNICIAN,
    ACCOUNTANT,
]


def in_any_group(user, names):
    """True when the user is authenticated and belongs to one of ``names``.

    Superusers pass every role check.
    """
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return user.groups.filter(name__in=names).exists()


def is_administrator(user):
    return in_any_group(user, [ADMINISTRATOR])
