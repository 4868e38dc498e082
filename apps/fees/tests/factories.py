# fees/tests/factories.py

"""Small builders for fee test data."""

from datetime import date
from decimal import Decimal

from apps.fees.models import FeeHead, FeeTerm, FeeStructure
from apps.students.models import SchoolClass, Student


def make_class(name='Grade 5', section='A'):
    return SchoolClass.objects.create(name=name, section=section)


def make_student(school_class, admission_number='ADM-001', **kwargs):
    defaults = {
        'first_name': 'Asha',
        'last_name': 'Rao',
        'guardian_name': 'Meena Rao',
        'guardian_whatsapp': '9876543210',
    }
    defaults.update(kwargs)
    return Student.objects.create(
        admission_number=admission_number,
        school_class=school_class,
        **defaults
    )


def make_head(name='Tuition', order=1):
    return FeeHead.objects.create(name=name, code=name[:3].upper(), display_order=order)


def make_term(name, due_date, academic_year='2023-24', order=1):
    return FeeTerm.objects.create(
        name=name,
        academic_year=academic_year,
        start_date=due_date.replace(day=1),
        end_date=due_date.replace(day=28),
        due_date=due_date,
        order=order,
    )


def make_structure(school_class, fee_head, fee_term, amount, **kwargs):
    return FeeStructure.objects.create(
        school_class=school_class,
        fee_head=fee_head,
        fee_term=fee_term,
        amount=Decimal(amount),
        **kwargs
    )


def make_two_term_setup():
    """
    One class, one student, Tuition billed over two terms:
    500 due 2024-01-01 and 300 due 2024-02-01.
    """
    school_class = make_class()
    student = make_student(school_class)
    tuition = make_head()
    term1 = make_term('Term 1', date(2024, 1, 1), order=1)
    term2 = make_term('Term 2', date(2024, 2, 1), order=2)
    structure1 = make_structure(school_class, tuition, term1, '500.00', late_fee_type='NONE')
    structure2 = make_structure(school_class, tuition, term2, '300.00', late_fee_type='NONE')
    return {
        'school_class': school_class,
        'student': student,
        'tuition': tuition,
        'term1': term1,
        'term2': term2,
        'structure1': structure1,
        'structure2': structure2,
    }
