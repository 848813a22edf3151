"""
OPD queue triage scoring.

Vital signs, pain and chief-complaint keywords add points; the total and the
red flags raised along the way decide the triage level, and the level decides
the patient's place in the consultation queue.
"""

import re
from decimal import Decimal, InvalidOperation

EMERGENCY = 'emergency'
URGENT = 'urgent'
NON_URGENT = 'non-urgent'
ROUTINE = 'routine'

PRIORITY_ORDER = {
    EMERGENCY: 1,
    URGENT: 2,
    NON_URGENT: 3,
    ROUTINE: 4,
}
UNKNOWN_PRIORITY = 5

SYMPTOM_POINTS = {
    'chest pain': 4,
    'difficulty breathing': 4,
    'stroke': 4,
    'seizure': 4,
    'unconscious': 4,
    'severe bleeding': 4,
    'head injury': 3,
    'abdominal pain': 2,
    'vomiting blood': 4,
    'confusion': 3,
}

# Any of these alone makes the patient an emergency
CRITICAL_FLAGS = {
    'Critical hypoxia',
    'Hypertensive crisis',
    'Chest pain',
    'Difficulty breathing',
    'Stroke',
    'Seizure',
    'Unconscious',
    'Severe bleeding',
    'Vomiting blood',
}

BP_PATTERN = re.compile(r'(\d+)\s*/\s*(\d+)')


def _number(value, cast=int):
    if value is None or value == '':
        return None
    try:
        return cast(value)
    except (TypeError, ValueError, InvalidOperation):
        return None


def score_vitals(data, red_flags):
    score = 0

    temp = _number(data.get('temperature'), Decimal)
    if temp is not None:
        if temp >= Decimal('39.5') or temp <= Decimal('35.0'):
            score += 3
            red_flags.append('High fever' if temp >= Decimal('39.5') else 'Hypothermia')
        elif temp >= Decimal('38.5') or temp <= Decimal('35.5'):
            score += 2

    match = BP_PATTERN.search(str(data.get('blood_pressure') or ''))
    if match:
        systolic, diastolic = int(match.group(1)), int(match.group(2))
        if systolic >= 180 or systolic < 90 or diastolic >= 120 or diastolic < 60:
            score += 3
            red_flags.append('Hypertensive crisis' if systolic >= 180 else 'Hypotension')
        elif systolic >= 160 or systolic < 100:
            score += 2

    hr = _number(data.get('heart_rate'))
    if hr is not None:
        if hr >= 120 or hr < 50:
            score += 3
            red_flags.append('Tachycardia' if hr >= 120 else 'Bradycardia')
        elif hr >= 100 or hr < 60:
            score += 2

    rr = _number(data.get('respiratory_rate'))
    if rr is not None:
        if rr >= 30 or rr < 10:
            score += 3
            red_flags.append('Tachypnea' if rr >= 30 else 'Bradypnea')
        elif rr >= 24 or rr < 12:
            score += 2

    spo2 = _number(data.get('oxygen_saturation'))
    if spo2 is not None:
        if spo2 < 90:
            score += 4
            red_flags.append('Critical hypoxia')
        elif spo2 < 94:
            score += 3
            red_flags.append('Hypoxia')
        elif spo2 < 96:
            score += 1

    return score


def score_pain(data, red_flags):
    pain = _number(data.get('pain_level'))
    if pain is None:
        return 0
    if pain >= 8:
        red_flags.append('Severe pain')
        return 3
    if pain >= 5:
        return 2
    if pain >= 3:
        return 1
    return 0


def score_symptoms(data, red_flags):
    text = f"{data.get('chief_complaint') or ''} {data.get('triage_notes') or ''}".lower()
    score = 0
    for symptom, points in SYMPTOM_POINTS.items():
        if symptom in text:
            score += points
            red_flags.append(symptom.capitalize())
    return score


def triage_level(score, red_flags):
    if score >= 10 or CRITICAL_FLAGS.intersection(red_flags):
        return EMERGENCY
    if score >= 6:
        return URGENT
    if score >= 3:
        return NON_URGENT
    return ROUTINE


def calculate_triage(data):
    """
    Score a triage form.

    Returns ``{'triage_score', 'triage_level', 'red_flags'}``; ``red_flags``
    is a comma separated string, empty when nothing was flagged.
    """
    red_flags = []
    score = score_vitals(data, red_flags)
    score += score_pain(data, red_flags)
    score += score_symptoms(data, red_flags)
    return {
        'triage_score': score,
        'triage_level': triage_level(score, red_flags),
        'red_flags': ', '.join(red_flags),
    }


def priority_order(level):
    return PRIORITY_ORDER.get(level, UNKNOWN_PRIORITY)
