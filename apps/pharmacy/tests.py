import csv
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.exceptions import UnprocessableError
from apps.patients.models import Patient, PatientAllergy, Encounter
from .models import DrugFormulary, Prescription, StockMovement
from . import services

User = get_user_model()


class PrescriptionServiceTestBase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(username='doc', password='x')
        self.patient = Patient.objects.create(first_name='Asha', last_name='Rao', gender='female')
        self.encounter = Encounter.objects.create(patient=self.patient, encounter_type='OPD')
        self.amoxicillin = DrugFormulary.objects.create(
            name='Amoxil', generic_name='Amoxicillin', strength='500mg',
            therapeutic_class='Penicillin', unit_price=Decimal('4.50'), stock_quantity=50
        )
        self.ibuprofen = DrugFormulary.objects.create(
            name='Brufen', generic_name='Ibuprofen', strength='400mg',
            therapeutic_class='NSAID', unit_price=Decimal('2.00'), stock_quantity=100,
            contraindications=['Avoid with aspirin']
        )
        self.aspirin = DrugFormulary.objects.create(
            name='Disprin', generic_name='Aspirin', strength='300mg',
            therapeutic_class='NSAID', unit_price=Decimal('1.00'), stock_quantity=100
        )

    def prescribe(self, drug, **overrides):
        data = {
            'patient': self.patient,
            'encounter': self.encounter,
            'drug': drug,
            'dosage': '1 tablet',
            'frequency': 'BD',
            'duration': '5 days',
            'quantity': 10,
        }
        data.update(overrides)
        return services.create_prescription(data, user=self.user)


class CreatePrescriptionTest(PrescriptionServiceTestBase):

    def test_drug_name_defaults_from_formulary(self):
        prescription = self.prescribe(self.amoxicillin)
        self.assertEqual(prescription.drug_name, 'Amoxil 500mg')
        self.assertEqual(prescription.encounter_id, self.encounter.pk)

    def test_missing_required_fields(self):
        with self.assertRaises(UnprocessableError) as ctx:
            self.prescribe(self.amoxicillin, dosage='', quantity=None)
        self.assertEqual(ctx.exception.status_code, 422)
        self.assertIn('dosage', ctx.exception.extra['errors'])
        self.assertIn('quantity', ctx.exception.extra['errors'])

    def test_allergy_blocks_prescription(self):
        PatientAllergy.objects.create(patient=self.patient, allergen='Penicillin', severity='severe')

        with self.assertRaises(UnprocessableError):
            self.prescribe(self.amoxicillin)
        self.assertFalse(Prescription.objects.exists())

    def test_inactive_allergy_ignored(self):
        PatientAllergy.objects.create(patient=self.patient, allergen='Penicillin', is_active=False)
        self.assertIsNotNone(self.prescribe(self.amoxicillin).pk)

    def test_interaction_warning_is_stored(self):
        self.prescribe(self.aspirin)
        prescription = self.prescribe(self.ibuprofen)

        warnings = prescription.prescription_data['drug_interactions']
        types = sorted(w['interaction_type'] for w in warnings)
        self.assertEqual(types, ['contraindication', 'therapeutic_class'])
        self.assertEqual(warnings[0]['drug_name'], 'Disprin')

    def test_cancelled_prescription_not_checked_for_interactions(self):
        first = self.prescribe(self.aspirin)
        services.cancel_prescription(first)
        prescription = self.prescribe(self.ibuprofen)
        self.assertNotIn('drug_interactions', prescription.prescription_data)


class StockReservationTest(PrescriptionServiceTestBase):

    def test_instant_dispensing_reserves_stock(self):
        prescription = self.prescribe(self.amoxicillin, instant_dispensing=True)

        self.amoxicillin.refresh_from_db()
        self.assertEqual(self.amoxicillin.stock_quantity, 40)
        self.assertTrue(prescription.stock_reserved)
        self.assertIsNotNone(prescription.stock_reserved_at)
        self.assertTrue(StockMovement.objects.filter(
            drug=self.amoxicillin, movement_type='RESERVATION', quantity=10
        ).exists())

    def test_insufficient_stock(self):
        with self.assertRaises(UnprocessableError):
            self.prescribe(self.amoxicillin, instant_dispensing=True, quantity=500)

        self.amoxicillin.refresh_from_db()
        self.assertEqual(self.amoxicillin.stock_quantity, 50)

    def test_quantity_change_moves_reservation(self):
        prescription = self.prescribe(self.amoxicillin, instant_dispensing=True)
        services.update_prescription(prescription, {'quantity': 5}, user=self.user)

        self.amoxicillin.refresh_from_db()
        self.assertEqual(self.amoxicillin.stock_quantity, 45)
        self.assertTrue(prescription.stock_reserved)

    def test_dispense_reserved_prescription(self):
        prescription = self.prescribe(self.amoxicillin, instant_dispensing=True)
        services.dispense_prescription(prescription, user=self.user)

        self.amoxicillin.refresh_from_db()
        self.assertEqual(self.amoxicillin.stock_quantity, 40)
        self.assertEqual(prescription.status, 'dispensed')
        self.assertFalse(prescription.stock_reserved)

    def test_cancel_returns_stock(self):
        prescription = self.prescribe(self.amoxicillin, instant_dispensing=True)
        services.cancel_prescription(prescription, user=self.user)

        self.amoxicillin.refresh_from_db()
        self.assertEqual(self.amoxicillin.stock_quantity, 50)
        self.assertTrue(StockMovement.objects.filter(movement_type='RETURN').exists())

    def test_release_expired_reservations(self):
        old = self.prescribe(self.amoxicillin, instant_dispensing=True)
        fresh = self.prescribe(self.aspirin, instant_dispensing=True)
        now = timezone.now()
        Prescription.objects.filter(pk=old.pk).update(stock_reserved_at=now - timedelta(minutes=40))
        Prescription.objects.filter(pk=fresh.pk).update(stock_reserved_at=now - timedelta(minutes=10))

        result = services.release_expired_reservations(minutes=30)

        self.assertEqual(result, {'released': 1, 'failed': 0})
        old.refresh_from_db()
        fresh.refresh_from_db()
        self.assertFalse(old.stock_reserved)
        self.assertTrue(fresh.stock_reserved)
        self.amoxicillin.refresh_from_db()
        self.assertEqual(self.amoxicillin.stock_quantity, 50)


class DrugFormularyApiTest(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.pharmacist = User.objects.create_user(username='pharm', password='x')
        self.pharmacist.groups.add(Group.objects.create(name='Pharmacist'))
        self.drug = DrugFormulary.objects.create(
            name='Paracetamol', generic_name='Acetaminophen', stock_quantity=5, reorder_level=10
        )

    def test_requires_pharmacist(self):
        nurse = User.objects.create_user(username='nurse', password='x')
        self.client.force_authenticate(nurse)
        response = self.client.get('/api/pharmacy/drugs/')
        self.assertEqual(response.status_code, 403)

    def test_low_stock(self):
        self.client.force_authenticate(self.pharmacist)
        response = self.client.get('/api/pharmacy/drugs/low_stock/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 1)

    def test_receive_stock(self):
        self.client.force_authenticate(self.pharmacist)
        response = self.client.post(f'/api/pharmacy/drugs/{self.drug.pk}/adjust_stock/', {
            'movement_type': 'RECEIPT', 'quantity': 20, 'reference_no': 'GRN-1'
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['stock_quantity'], 25)
        self.assertEqual(StockMovement.objects.get().movement_type, 'RECEIPT')

    def test_negative_adjustment_rejected(self):
        self.client.force_authenticate(self.pharmacist)
        response = self.client.post(f'/api/pharmacy/drugs/{self.drug.pk}/adjust_stock/', {
            'movement_type': 'ADJUSTMENT', 'quantity': -6
        }, format='json')

        self.assertEqual(response.status_code, 422)
        self.assertFalse(response.data['success'])

    def test_delete_discontinues(self):
        self.client.force_authenticate(self.pharmacist)
        response = self.client.delete(f'/api/pharmacy/drugs/{self.drug.pk}/')

        self.assertEqual(response.status_code, 200)
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.status, 'discontinued')

    def test_export_reports_stock_status(self):
        DrugFormulary.objects.create(name='Cetirizine', generic_name='Cetirizine', strength='10mg', stock_quantity=0)
        DrugFormulary.objects.create(name='Metformin', generic_name='Metformin', strength='500mg', stock_quantity=200)
        self.client.force_authenticate(self.pharmacist)

        response = self.client.get('/api/pharmacy/drugs/export/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'text/csv')
        rows = list(csv.DictReader(StringIO(response.content.decode())))
        stock_status = {row['Name']: row['Stock Status'] for row in rows}
        self.assertEqual(stock_status, {
            'Cetirizine': 'Out of Stock',
            'Metformin': 'In Stock',
            'Paracetamol': 'Low Stock',
        })

    def test_import_skips_existing_and_books_opening_stock(self):
        self.client.force_authenticate(self.pharmacist)
        upload = SimpleUploadedFile('drugs.csv', (
            b'name,generic_name,strength,form,unit_price,stock_quantity,reorder_level,status\n'
            b'Paracetamol,Acetaminophen,,Tablet,1.50,100,10,active\n'
            b'Amoxil,Amoxicillin,500mg,Capsule,4.50,40,10,Active\n'
            b'Mystery,Unknown,1mg,powder,1,1,1,active\n'
            b'Saline,,0.9%,injection,20,5,2,active\n'
        ), content_type='text/csv')

        response = self.client.post('/api/pharmacy/drugs/import/', {'file': upload}, format='multipart')

        self.assertEqual(response.status_code, 200)
        result = response.data['data']
        self.assertEqual(result['imported'], 1)
        self.assertEqual(result['skipped'], 1)
        self.assertEqual([error['row'] for error in result['errors']], [4, 5])
        self.assertIn('form', result['errors'][0]['errors'])
        self.assertIn('generic_name', result['errors'][1]['errors'])

        amoxil = DrugFormulary.objects.get(name='Amoxil')
        self.assertEqual(amoxil.form, 'capsule')
        self.assertEqual(amoxil.stock_quantity, 40)
        movement = StockMovement.objects.get(drug=amoxil)
        self.assertEqual((movement.movement_type, movement.quantity, movement.reference_no), ('RECEIPT', 40, 'IMPORT'))
        self.drug.refresh_from_db()
        self.assertEqual(self.drug.stock_quantity, 5)

    def test_import_requires_pharmacist(self):
        nurse = User.objects.create_user(username='nurse', password='x')
        self.client.force_authenticate(nurse)
        upload = SimpleUploadedFile('drugs.csv', b'name,generic_name\nX,Y\n', content_type='text/csv')

        response = self.client.post('/api/pharmacy/drugs/import/', {'file': upload}, format='multipart')

        self.assertEqual(response.status_code, 403)
        self.assertFalse(DrugFormulary.objects.filter(name='X').exists())
