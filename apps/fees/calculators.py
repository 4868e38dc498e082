# fees/calculators.py

"""
Fee Computation

Pure calculation routines used by the fee office:
- FeeCalculator: fee structures + payment records -> computed fee per (fee head, term)
- PaymentAllocator: spread one payment across outstanding fees by strategy
- ReminderGenerator: classify overdue fees into reminder tiers

Nothing in this module touches the database. Inputs are plain dicts
(model instances are accepted and converted through their
``as_calculation_input`` / ``as_payment_record`` methods), outputs are
plain dicts recomputed on every call.

All money is Decimal, rounded half-up to 0.01.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from django.core.exceptions import ValidationError
import logging

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')
DAYS_PER_MONTH = Decimal('30')

# Fee statuses
STATUS_PAID = 'Paid'
STATUS_PARTIALLY_PAID = 'Partially Paid'
STATUS_PENDING = 'Pending'
STATUS_OVERDUE = 'Overdue'

# Late fee types
LATE_FEE_NONE = 'NONE'
LATE_FEE_FLAT = 'FLAT'
LATE_FEE_PER_DAY = 'PER_DAY'
LATE_FEE_PERCENTAGE = 'PERCENTAGE'
LATE_FEE_COMPOUND = 'COMPOUND'

DEFAULT_OPTIONS = {
    'calculate_late_fees': True,
    'apply_discounts': True,
    'apply_concessions': True,
    'calculate_installments': False,
    'grace_period_days': 0,
    'as_of_date': None,
}


# =============================================================================
# HELPERS
# =============================================================================

def to_money(value):
    """Convert to Decimal rounded half-up to the cent; None/'' become 0.00."""
    if value is None or value == '':
        return ZERO
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_date(value):
    """Accept date, datetime or ISO date string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def obligation_key(fee_head_id, fee_term_id):
    """Key identifying one obligation: '<fee_head_id>:<fee_term_id>'."""
    return f"{fee_head_id}:{fee_term_id}"


def _structure_input(structure, default_policy=None):
    if hasattr(structure, 'as_calculation_input'):
        return structure.as_calculation_input(default_policy)
    return structure


def _payment_input(record):
    if hasattr(record, 'as_payment_record'):
        return record.as_payment_record()
    return record


def _concession_input(concession):
    if hasattr(concession, 'as_calculation_input'):
        return concession.as_calculation_input()
    return concession


# =============================================================================
# FEE COMPONENTS
# =============================================================================

def calculate_overdue_days(due_date, as_of_date):
    """Whole days past the due date, never negative."""
    return max(0, (to_date(as_of_date) - to_date(due_date)).days)


def calculate_late_fee(amount, overdue_days, late_fee_type, late_fee_value,
                       max_late_fee=None, grace_period_days=0):
    """
    Late fee for an obligation.

    Charged only when overdue_days exceeds the grace period, over the
    days past the grace period:

    - FLAT: one-off amount
    - PER_DAY: amount per chargeable day
    - PERCENTAGE: simple monthly rate on the amount, prorated per day (days / 30)
    - COMPOUND: daily rate compounded on the amount

    Args:
        amount: Amount the late fee is computed on (after discounts)
        overdue_days: Days past the due date
        late_fee_type: One of NONE, FLAT, PER_DAY, PERCENTAGE, COMPOUND
        late_fee_value: Amount or percentage depending on the type
        max_late_fee: Cap (None for no cap)
        grace_period_days: Days after the due date with no late fee

    Returns:
        Decimal: Late fee amount

    Example:
        >>> calculate_late_fee(Decimal('1000'), 40, 'PERCENTAGE', Decimal('3'), grace_period_days=10)
        Decimal('30.00')
    """
    grace_period_days = int(grace_period_days or 0)
    if not late_fee_type or late_fee_type == LATE_FEE_NONE or overdue_days <= grace_period_days:
        return ZERO

    value = to_money(late_fee_value)
    if value <= 0:
        return ZERO

    amount = to_money(amount)
    chargeable_days = overdue_days - grace_period_days

    if late_fee_type == LATE_FEE_FLAT:
        late_fee = value
    elif late_fee_type == LATE_FEE_PER_DAY:
        late_fee = value * chargeable_days
    elif late_fee_type == LATE_FEE_PERCENTAGE:
        late_fee = amount * (value / HUNDRED) * (Decimal(chargeable_days) / DAYS_PER_MONTH)
    elif late_fee_type == LATE_FEE_COMPOUND:
        late_fee = amount * ((1 + value / HUNDRED) ** chargeable_days) - amount
    else:
        raise ValidationError(f"Unknown late fee type: {late_fee_type}")

    if max_late_fee is not None and max_late_fee != '':
        late_fee = min(late_fee, to_money(max_late_fee))

    return to_money(late_fee)


def calculate_discount(base_amount, discount_type, value, max_discount=None, min_fee_after_discount=None):
    """
    Discount on a base amount.

    Args:
        base_amount: Amount before discount
        discount_type: 'percentage' or 'fixed'
        value: Percentage or fixed amount
        max_discount: Optional cap on the discount
        min_fee_after_discount: Optional floor for the discounted fee

    Returns:
        Decimal: Discount, never more than the base amount
    """
    base_amount = to_money(base_amount)
    value = to_money(value)

    if value <= 0 or base_amount <= 0:
        return ZERO

    if discount_type == 'percentage':
        discount = base_amount * value / HUNDRED
    elif discount_type == 'fixed':
        discount = value
    else:
        raise ValidationError(f"Unknown discount type: {discount_type}")

    if max_discount is not None:
        discount = min(discount, to_money(max_discount))

    if min_fee_after_discount is not None:
        floor = to_money(min_fee_after_discount)
        if base_amount - discount < floor:
            discount = max(ZERO, base_amount - floor)

    return to_money(min(discount, base_amount))


def is_concession_applicable(concession, fee_head_id, fee_term_id, as_of_date):
    """Approved, valid on the date and covering this head and term (empty lists mean all)."""
    if concession.get('status') != 'APPROVED':
        return False

    valid_from = to_date(concession.get('valid_from'))
    valid_until = to_date(concession.get('valid_until'))
    if valid_from and as_of_date < valid_from:
        return False
    if valid_until and as_of_date > valid_until:
        return False

    heads = [str(pk) for pk in concession.get('applied_fee_heads') or []]
    terms = [str(pk) for pk in concession.get('applied_fee_terms') or []]
    if heads and str(fee_head_id) not in heads:
        return False
    if terms and str(fee_term_id) not in terms:
        return False

    return True


def calculate_concessions(base_amount, fee_head_id, fee_term_id, concessions, as_of_date):
    """
    Total concession for one obligation.

    Returns:
        tuple: (concession_amount, applied_concessions); the amount is
        capped at the base amount.
    """
    base_amount = to_money(base_amount)
    as_of_date = to_date(as_of_date)
    total = ZERO
    applied = []

    for concession in concessions or []:
        concession = _concession_input(concession)
        if not is_concession_applicable(concession, fee_head_id, fee_term_id, as_of_date):
            continue

        value = concession.get('custom_value')
        if value is None:
            value = concession.get('value')
        value = to_money(value)

        if concession.get('type') == 'PERCENTAGE':
            total += base_amount * value / HUNDRED
        else:
            total += value
        applied.append(concession)

    return to_money(min(total, base_amount)), applied


def determine_fee_status(final_amount, paid_amount, overdue_days, grace_period_days=0):
    """
    Status precedence: Paid, Partially Paid, Overdue, Pending.

    An unpaid fee is Overdue once it is past due beyond the grace period.
    """
    final_amount = to_money(final_amount)
    paid_amount = to_money(paid_amount)

    if final_amount - paid_amount <= 0:
        return STATUS_PAID
    if paid_amount > 0:
        return STATUS_PARTIALLY_PAID
    if overdue_days > int(grace_period_days or 0):
        return STATUS_OVERDUE
    return STATUS_PENDING


def calculate_installments(total_amount, installment_count, paid_amount, start_date,
                           interval_days=30, as_of_date=None):
    """
    Split a fee into equal installments and match payments against them.

    Installments are floored to the cent; the last one absorbs the
    remainder. Payments fill installments in order.

    Returns:
        dict: installment_amount, total_installments, paid_installments,
        remaining_installments, next_installment_number,
        next_installment_amount, next_installment_due, schedule
    """
    try:
        installment_count = int(installment_count)
    except (TypeError, ValueError):
        raise ValidationError("Installment count must be a whole number")
    if installment_count <= 0:
        raise ValidationError("Installment count must be at least 1")

    total_amount = to_money(total_amount)
    remaining_paid = to_money(paid_amount)
    start_date = to_date(start_date)
    as_of_date = to_date(as_of_date) or start_date
    interval = timedelta(days=int(interval_days or 0))

    installment_amount = (total_amount / installment_count).quantize(CENT, rounding=ROUND_DOWN)
    last_amount = total_amount - installment_amount * (installment_count - 1)

    schedule = []
    paid_installments = 0
    next_installment = None

    for number in range(1, installment_count + 1):
        amount = last_amount if number == installment_count else installment_amount
        due_date = start_date + interval * (number - 1)

        if remaining_paid >= amount:
            status = STATUS_PAID
            paid_part = amount
            paid_installments += 1
        elif remaining_paid > 0:
            status = STATUS_PARTIALLY_PAID
            paid_part = remaining_paid
        else:
            status = STATUS_OVERDUE if due_date < as_of_date else STATUS_PENDING
            paid_part = ZERO
        remaining_paid -= paid_part

        entry = {
            'installment_number': number,
            'amount': amount,
            'paid_amount': paid_part,
            'due_date': due_date,
            'status': status,
        }
        schedule.append(entry)

        if next_installment is None and status != STATUS_PAID:
            next_installment = entry

    return {
        'installment_amount': installment_amount,
        'total_installments': installment_count,
        'paid_installments': paid_installments,
        'remaining_installments': installment_count - paid_installments,
        'next_installment_number': next_installment['installment_number'] if next_installment else None,
        'next_installment_amount': (
            next_installment['amount'] - next_installment['paid_amount'] if next_installment else ZERO
        ),
        'next_installment_due': next_installment['due_date'] if next_installment else None,
        'schedule': schedule,
    }


# =============================================================================
# FEE CALCULATOR
# =============================================================================

class FeeCalculator:
    """Turns fee structures and payment records into computed fees."""

    @staticmethod
    def resolve_options(options=None):
        """Merge caller options over the defaults; as_of_date defaults to today."""
        resolved = dict(DEFAULT_OPTIONS)
        resolved.update({k: v for k, v in (options or {}).items() if v is not None})
        if resolved['as_of_date'] is None:
            resolved['as_of_date'] = date.today()
        resolved['as_of_date'] = to_date(resolved['as_of_date'])
        resolved['grace_period_days'] = int(resolved['grace_period_days'] or 0)
        if resolved['grace_period_days'] < 0:
            raise ValidationError("Grace period cannot be negative")
        return resolved

    @staticmethod
    def calculate_fee(structure, payment_records, options, concessions=None):
        """
        Compute one obligation.

        Args:
            structure: Fee structure dict (see FeeStructure.as_calculation_input)
            payment_records: Payment record dicts for the student
            options: Resolved options (see resolve_options)
            concessions: Concession dicts for the student

        Returns:
            dict: The computed fee
        """
        as_of_date = options['as_of_date']
        grace_period_days = options['grace_period_days']

        fee_head_id = str(structure['fee_head_id'])
        fee_term_id = str(structure['fee_term_id'])
        base_amount = to_money(structure.get('base_amount'))
        if base_amount < 0:
            raise ValidationError(f"Base amount cannot be negative for {structure.get('fee_head_name')}")

        due_date = to_date(structure.get('due_date'))
        if due_date is None:
            raise ValidationError(f"Due date missing for {structure.get('fee_head_name')}")

        # Discounts: fixed amount wins over percentage
        discount_amount = ZERO
        if options['apply_discounts']:
            fixed = to_money(structure.get('discount_amount'))
            percentage = to_money(structure.get('discount_percentage'))
            if fixed > 0:
                discount_amount = calculate_discount(base_amount, 'fixed', fixed)
            elif percentage > 0:
                discount_amount = calculate_discount(base_amount, 'percentage', percentage)

        concession_amount = ZERO
        applied_concessions = []
        if options['apply_concessions'] and concessions:
            concession_amount, applied_concessions = calculate_concessions(
                base_amount, fee_head_id, fee_term_id, concessions, as_of_date
            )

        discounted_amount = max(ZERO, base_amount - discount_amount - concession_amount)
        overdue_days = calculate_overdue_days(due_date, as_of_date)

        late_fee_amount = ZERO
        if options['calculate_late_fees']:
            late_fee_amount = calculate_late_fee(
                discounted_amount,
                overdue_days,
                structure.get('late_fee_type'),
                structure.get('late_fee_value'),
                structure.get('max_late_fee'),
                grace_period_days,
            )

        final_amount = discounted_amount + late_fee_amount

        # Payments count against the fee only when head and term both match
        received = sum(
            (
                to_money(record.get('amount'))
                for record in payment_records
                if str(record.get('fee_head_id')) == fee_head_id
                and str(record.get('fee_term_id')) == fee_term_id
            ),
            ZERO,
        )
        paid_amount = min(received, final_amount)
        excess_amount = received - paid_amount
        outstanding_amount = final_amount - paid_amount

        status = determine_fee_status(final_amount, paid_amount, overdue_days, grace_period_days)

        installment_details = None
        if (
            options['calculate_installments']
            and structure.get('installment_allowed')
            and structure.get('installment_count')
        ):
            installment_details = calculate_installments(
                final_amount,
                structure['installment_count'],
                paid_amount,
                due_date,
                structure.get('installment_interval_days') or 30,
                as_of_date,
            )

        return {
            'key': obligation_key(fee_head_id, fee_term_id),
            'fee_structure_id': structure.get('id'),
            'fee_head_id': fee_head_id,
            'fee_head_name': structure.get('fee_head_name', ''),
            'fee_term_id': fee_term_id,
            'fee_term_name': structure.get('fee_term_name', ''),
            'base_amount': base_amount,
            'discount_amount': discount_amount,
            'concession_amount': concession_amount,
            'discounted_amount': discounted_amount,
            'late_fee_amount': late_fee_amount,
            'final_amount': final_amount,
            'paid_amount': paid_amount,
            'excess_amount': excess_amount,
            'outstanding_amount': outstanding_amount,
            'due_date': due_date,
            'overdue_days': overdue_days,
            'status': status,
            'applied_concessions': applied_concessions,
            'installment_details': installment_details,
        }

    @staticmethod
    def calculate_student_fees(fee_structures, payment_records, options=None, concessions=None,
                               default_late_fee_policy=None):
        """
        Compute every obligation of a student.

        Args:
            fee_structures: FeeStructure instances or dicts
            payment_records: FeeCollectionItem instances or dicts
            options: calculate_late_fees, apply_discounts, apply_concessions,
                calculate_installments, grace_period_days, as_of_date
            concessions: StudentConcession instances or dicts
            default_late_fee_policy: Policy inherited by structures set to DEFAULT

        Returns:
            list: One computed fee dict per structure, in input order

        Example:
            >>> fees = FeeCalculator.calculate_student_fees(
            ...     [{'fee_head_id': 'h1', 'fee_head_name': 'Tuition', 'fee_term_id': 't1',
            ...       'fee_term_name': 'Q1', 'base_amount': '500', 'due_date': '2024-01-01'}],
            ...     [],
            ...     {'as_of_date': '2024-01-11'},
            ... )
            >>> fees[0]['status']
            'Overdue'
        """
        resolved = FeeCalculator.resolve_options(options)
        records = [_payment_input(record) for record in payment_records or []]
        concession_data = [_concession_input(concession) for concession in concessions or []]

        return [
            FeeCalculator.calculate_fee(
                _structure_input(structure, default_late_fee_policy),
                records,
                resolved,
                concession_data,
            )
            for structure in fee_structures
        ]

    @staticmethod
    def summarize_fees(calculated_fees):
        """Totals across computed fees, plus a count per status."""
        fields = [
            'base_amount', 'discount_amount', 'concession_amount', 'late_fee_amount',
            'final_amount', 'paid_amount', 'excess_amount', 'outstanding_amount',
        ]
        summary = {f"total_{field.replace('_amount', '')}": ZERO for field in fields}
        status_counts = {
            STATUS_PAID: 0,
            STATUS_PARTIALLY_PAID: 0,
            STATUS_PENDING: 0,
            STATUS_OVERDUE: 0,
        }

        for fee in calculated_fees:
            for field in fields:
                summary[f"total_{field.replace('_amount', '')}"] += fee[field]
            status_counts[fee['status']] += 1

        summary['status_counts'] = status_counts
        summary['fee_count'] = len(calculated_fees)
        return summary


# =============================================================================
# PAYMENT ALLOCATOR
# =============================================================================

class PaymentAllocator:
    """Distributes one payment across outstanding fees."""

    OLDEST_FIRST = 'oldest_first'
    HIGHEST_AMOUNT_FIRST = 'highest_amount_first'
    EQUAL_DISTRIBUTION = 'equal_distribution'
    MANUAL = 'manual'

    STRATEGIES = (OLDEST_FIRST, HIGHEST_AMOUNT_FIRST, EQUAL_DISTRIBUTION, MANUAL)

    @staticmethod
    def _parse_payment_amount(payment_amount):
        try:
            amount = to_money(payment_amount)
        except ValidationError:
            raise ValidationError("Payment amount must be a number")
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        return amount

    @staticmethod
    def _due_date_order(fees):
        """Oldest due date first; ties keep input order."""
        indexed = list(enumerate(fees))
        indexed.sort(key=lambda item: (to_date(item[1]['due_date']), item[0]))
        return [fee for _, fee in indexed]

    @staticmethod
    def _sequential(amount, ordered_fees):
        allocated = {}
        remaining = amount
        for fee in ordered_fees:
            if remaining <= 0:
                break
            give = min(fee['outstanding_amount'], remaining)
            allocated[fee['key']] = give
            remaining -= give
        return allocated

    @staticmethod
    def _equal(amount, ordered_fees):
        """
        Even split with water-filling: shares are floored to the cent,
        fees that cap out release the rest of their share to the others,
        and leftover cents go one at a time in due-date order.
        """
        allocated = {fee['key']: ZERO for fee in ordered_fees}
        open_fees = list(ordered_fees)
        pool = amount

        while open_fees and pool > 0:
            share = (pool / len(open_fees)).quantize(CENT, rounding=ROUND_DOWN)
            if share <= 0:
                break
            still_open = []
            for fee in open_fees:
                capacity = fee['outstanding_amount'] - allocated[fee['key']]
                give = min(share, capacity)
                allocated[fee['key']] += give
                pool -= give
                if capacity - give > 0:
                    still_open.append(fee)
            open_fees = still_open

        for fee in open_fees:
            if pool <= 0:
                break
            if fee['outstanding_amount'] - allocated[fee['key']] >= CENT:
                allocated[fee['key']] += CENT
                pool -= CENT

        return allocated

    @staticmethod
    def _manual(amount, ordered_fees, manual_amounts):
        allocated = {}
        remaining = amount
        known_keys = {fee['key'] for fee in ordered_fees}

        for key in manual_amounts:
            if key not in known_keys:
                logger.warning(f"Manual allocation for unknown obligation {key} ignored")

        for fee in ordered_fees:
            raw = manual_amounts.get(fee['key'])
            try:
                requested = to_money(raw)
            except ValidationError:
                logger.warning(f"Invalid manual amount {raw!r} for {fee['key']} treated as zero")
                requested = ZERO
            if requested <= 0 or remaining <= 0:
                continue
            give = min(requested, fee['outstanding_amount'], remaining)
            allocated[fee['key']] = give
            remaining -= give

        return allocated

    @staticmethod
    def allocate(payment_amount, outstanding_fees, strategy=OLDEST_FIRST, manual_amounts=None):
        """
        Allocate a payment across outstanding fees.

        Args:
            payment_amount: Positive amount received
            outstanding_fees: Computed fee dicts selected by the caller
            strategy: oldest_first, highest_amount_first, equal_distribution or manual
            manual_amounts: For manual: {'<fee_head_id>:<fee_term_id>': amount}

        Returns:
            dict: strategy, payment_amount, allocations, total_allocated, unallocated

        Raises:
            ValidationError: Non-positive amount or unknown strategy

        Example:
            >>> result = PaymentAllocator.allocate(Decimal('600'), fees, 'oldest_first')
            >>> [a['allocated_amount'] for a in result['allocations']]
            [Decimal('500.00'), Decimal('100.00')]
        """
        amount = PaymentAllocator._parse_payment_amount(payment_amount)

        if strategy not in PaymentAllocator.STRATEGIES:
            raise ValidationError(
                f"Unknown allocation strategy '{strategy}'. "
                f"Choose one of: {', '.join(PaymentAllocator.STRATEGIES)}"
            )

        fees = []
        for fee in outstanding_fees:
            fee = dict(fee)
            fee['outstanding_amount'] = to_money(fee.get('outstanding_amount'))
            fee.setdefault('key', obligation_key(fee['fee_head_id'], fee['fee_term_id']))
            if fee['outstanding_amount'] > 0:
                fees.append(fee)

        ordered = PaymentAllocator._due_date_order(fees)

        if strategy == PaymentAllocator.OLDEST_FIRST:
            allocated = PaymentAllocator._sequential(amount, ordered)
        elif strategy == PaymentAllocator.HIGHEST_AMOUNT_FIRST:
            # Stable sort over due-date order: ties go to the older fee
            ordered = sorted(ordered, key=lambda fee: -fee['outstanding_amount'])
            allocated = PaymentAllocator._sequential(amount, ordered)
        elif strategy == PaymentAllocator.EQUAL_DISTRIBUTION:
            allocated = PaymentAllocator._equal(amount, ordered)
        else:
            allocated = PaymentAllocator._manual(amount, ordered, manual_amounts or {})

        allocations = []
        for fee in ordered:
            allocated_amount = allocated.get(fee['key'], ZERO)
            if allocated_amount <= 0:
                continue
            allocations.append({
                'key': fee['key'],
                'fee_head_id': fee['fee_head_id'],
                'fee_head_name': fee.get('fee_head_name', ''),
                'fee_term_id': fee['fee_term_id'],
                'fee_term_name': fee.get('fee_term_name', ''),
                'due_date': to_date(fee['due_date']),
                'allocated_amount': allocated_amount,
                'remaining_outstanding': fee['outstanding_amount'] - allocated_amount,
            })

        total_allocated = sum((a['allocated_amount'] for a in allocations), ZERO)

        return {
            'strategy': strategy,
            'payment_amount': amount,
            'allocations': allocations,
            'total_allocated': total_allocated,
            'unallocated': amount - total_allocated,
        }


# =============================================================================
# REMINDER GENERATOR
# =============================================================================

REMINDER_TEMPLATES = {
    'final': (
        "FINAL NOTICE: Your fee payment of {amount} for {fee_head} ({fee_term}) is "
        "{days} days overdue. Please pay immediately to avoid further action."
    ),
    'second': (
        "SECOND REMINDER: Your fee payment of {amount} for {fee_head} ({fee_term}) is "
        "{days} days overdue. Please pay at the earliest."
    ),
    'first': (
        "REMINDER: Your fee payment of {amount} for {fee_head} ({fee_term}) is "
        "{days} days overdue. Please pay to avoid late fees."
    ),
    'overdue': (
        "Your fee payment of {amount} for {fee_head} ({fee_term}) is now overdue. "
        "Please pay to avoid late fees."
    ),
}


class ReminderGenerator:
    """Classifies overdue fees into reminder tiers."""

    TIERS = ('final', 'second', 'first', 'overdue')

    @staticmethod
    def validate_thresholds(first_reminder_days, second_reminder_days, final_reminder_days):
        try:
            thresholds = [int(first_reminder_days), int(second_reminder_days), int(final_reminder_days)]
        except (TypeError, ValueError):
            raise ValidationError("Reminder thresholds must be whole numbers of days")
        if thresholds[0] < 1:
            raise ValidationError("The first reminder threshold must be at least one day overdue")
        if not (thresholds[0] < thresholds[1] < thresholds[2]):
            raise ValidationError(
                "Reminder thresholds must be strictly increasing (first < second < final)"
            )
        return thresholds

    @staticmethod
    def classify(fee, first_reminder_days, second_reminder_days, final_reminder_days):
        """Reminder tier for one fee, or None. Thresholds are inclusive."""
        if to_money(fee.get('outstanding_amount')) <= 0:
            return None

        days = int(fee.get('overdue_days') or 0)
        if days <= 0:
            return None
        if days >= final_reminder_days:
            return 'final'
        if days >= second_reminder_days:
            return 'second'
        if days >= first_reminder_days:
            return 'first'
        if fee.get('status') == STATUS_OVERDUE:
            return 'overdue'
        return None

    @staticmethod
    def render_message(reminder_type, fee, amount_text, student_name=None):
        message = REMINDER_TEMPLATES[reminder_type].format(
            amount=amount_text,
            fee_head=fee.get('fee_head_name', ''),
            fee_term=fee.get('fee_term_name', ''),
            days=int(fee.get('overdue_days') or 0),
        )
        if student_name:
            message = f"Dear Parent of {student_name},\n{message}"
        return message

    @staticmethod
    def generate(outstanding_fees, first_reminder_days=7, second_reminder_days=15,
                 final_reminder_days=30, currency=None, student_name=None, amount_formatter=None):
        """
        Build reminders for outstanding fees.

        Args:
            outstanding_fees: Computed fee dicts
            first_reminder_days, second_reminder_days, final_reminder_days:
                Inclusive day thresholds, strictly increasing
            currency: Currency code shown before the amount
            student_name: Addressed in the message when given
            amount_formatter: Callable formatting the amount (overrides currency)

        Returns:
            list: Reminder dicts with reminder_type, days_overdue, outstanding_amount, message
        """
        first, second, final = ReminderGenerator.validate_thresholds(
            first_reminder_days, second_reminder_days, final_reminder_days
        )

        reminders = []
        for fee in outstanding_fees:
            reminder_type = ReminderGenerator.classify(fee, first, second, final)
            if reminder_type is None:
                continue

            outstanding = to_money(fee['outstanding_amount'])
            if amount_formatter:
                amount_text = amount_formatter(outstanding)
            elif currency:
                amount_text = f"{currency} {outstanding:,.2f}"
            else:
                amount_text = f"{outstanding:,.2f}"

            reminders.append({
                'key': fee.get('key') or obligation_key(fee['fee_head_id'], fee['fee_term_id']),
                'fee_head_id': fee['fee_head_id'],
                'fee_head_name': fee.get('fee_head_name', ''),
                'fee_term_id': fee['fee_term_id'],
                'fee_term_name': fee.get('fee_term_name', ''),
                'reminder_type': reminder_type,
                'days_overdue': int(fee.get('overdue_days') or 0),
                'outstanding_amount': outstanding,
                'message': ReminderGenerator.render_message(reminder_type, fee, amount_text, student_name),
            })

        return reminders
