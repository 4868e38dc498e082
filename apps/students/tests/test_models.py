# students/tests/test_models.py

from django.core.exceptions import ValidationError
from django.test import TestCase

from apps.students.models import SchoolClass, Student


class StudentTests(TestCase):

    def setUp(self):
        self.school_class = SchoolClass.objects.create(name='Grade 5', section='A')

    def test_names(self):
        student = Student(admission_number='ADM-010', first_name='Asha', middle_name='K', last_name='Rao')
        self.assertEqual(student.get_full_name(), 'Asha K Rao')
        self.assertEqual(str(student), 'Asha K Rao (ADM-010)')
        self.assertEqual(str(self.school_class), 'Grade 5 - A')

    def test_reminder_number_prefers_whatsapp(self):
        student = Student(guardian_phone='9000000001', guardian_whatsapp=' 9876543210 ')
        self.assertEqual(student.get_reminder_number(), '9876543210')

        student.guardian_whatsapp = ''
        self.assertEqual(student.get_reminder_number(), '9000000001')

        student.guardian_phone = ''
        self.assertEqual(student.get_reminder_number(), '')

    def test_active_student_needs_class(self):
        student = Student(admission_number='ADM-011', first_name='Ravi')
        with self.assertRaises(ValidationError):
            student.clean()

        student.enrollment_status = 'GRADUATED'
        student.clean()
