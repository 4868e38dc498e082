# core/utils.py

"""
Central utilities for the fee office.
Prevents code duplication and ensures consistency across all apps
"""
from django.core.paginator import Paginator, EmptyPage, PageNotAnInteger
from django.utils import timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging

logger = logging.getLogger(__name__)

# Currencies without minor units
ZERO_DECIMAL_CURRENCIES = ['JPY', 'KRW', 'VND', 'CLP', 'PYG', 'UGX']


# =============================================================================
# CURRENCY & MONEY FORMATTING
# =============================================================================

def format_money(amount, include_symbol=True):
    """
    Format money amount according to school financial settings.

    Args:
        amount: Decimal or numeric value to format
        include_symbol: Whether to include currency symbol

    Returns:
        str: Formatted money string

    Example:
        >>> from apps.core.utils import format_money
        >>> print(format_money(1500000))  # "INR 1,500,000.00"
        >>> print(format_money(1500000, False))  # "1,500,000.00"
    """
    from apps.core.models import FinancialSettings
    return FinancialSettings.get_instance().format_currency(amount, include_symbol)


def calculate_percentage(part, whole, decimal_places=2):
    """
    Calculate percentage with safe division.

    Args:
        part: The part value
        whole: The whole value
        decimal_places: Number of decimal places (default: 2)

    Returns:
        Decimal: Percentage value, 0 if whole is 0

    Example:
        >>> from apps.core.utils import calculate_percentage
        >>> percentage = calculate_percentage(75, 100)  # 75.00
        >>> completion = calculate_percentage(30, 120)  # 25.00
    """
    try:
        part = Decimal(str(part or 0))
        whole = Decimal(str(whole or 0))

        if whole == 0:
            return Decimal('0.00')

        percentage = (part / whole) * 100
        return percentage.quantize(Decimal(1).scaleb(-decimal_places), rounding=ROUND_HALF_UP)
    except (ValueError, TypeError, InvalidOperation):
        return Decimal('0.00')


# =============================================================================
# TIMEZONE UTILITY FUNCTIONS
# =============================================================================

def get_school_current_time():
    """
    Get current time in school's operational timezone (settings.TIME_ZONE).

    Returns:
        datetime: Current datetime in school's timezone
    """
    return timezone.localtime(timezone.now())


def get_school_today():
    """
    Get today's date in school's operational timezone.

    Always use this instead of date.today() for due date and
    overdue calculations: "today" depends on the school's timezone,
    not the server's.

    Returns:
        date: Today's date in school's timezone

    Example:
        >>> from apps.core.utils import get_school_today
        >>> today = get_school_today()
        >>> if term.due_date < today:
        >>>     days_overdue = (today - term.due_date).days
    """
    return get_school_current_time().date()


# =============================================================================
# PAGINATION & FILTERING
# =============================================================================

def paginate_queryset(request, queryset, per_page=20):
    """
    Paginate a queryset with sensible defaults.

    Args:
        request: HTTP request object
        queryset: Django queryset to paginate
        per_page: Items per page (default: 20)

    Returns:
        tuple: (page_obj, paginator)
    """
    paginator = Paginator(queryset, per_page)
    page = request.GET.get('page', 1)

    try:
        page_obj = paginator.page(page)
    except PageNotAnInteger:
        page_obj = paginator.page(1)
    except EmptyPage:
        page_obj = paginator.page(paginator.num_pages)

    return page_obj, paginator


def parse_filters(request, filter_keys):
    """
    Extract filter values from request.GET.

    Args:
        request: HTTP request object
        filter_keys: list of filter names to extract

    Returns:
        dict: {key: value or None}

    Example:
        >>> filters = parse_filters(request, ['status', 'reminder_type'])
        >>> if filters['status']:
        >>>     queryset = queryset.filter(status=filters['status'])
    """
    filters = {}
    for key in filter_keys:
        value = request.GET.get(key, '').strip()
        filters[key] = value if value else None
    return filters


# =============================================================================
# NUMBER & CALCULATION UTILITIES
# =============================================================================

def safe_decimal(value, default=Decimal('0.00')):
    """
    Safely convert value to Decimal.

    Args:
        value: Value to convert
        default: Default value if conversion fails

    Returns:
        Decimal: Converted value or default

    Example:
        >>> amount = safe_decimal(request.POST.get('amount'))
        >>> amount = safe_decimal("invalid", Decimal('0.00'))
    """
    if value is None or value == '':
        return default
    try:
        result = Decimal(str(value))
    except (ValueError, TypeError, InvalidOperation):
        return default
    if not result.is_finite():
        return default
    return result


def round_to_currency(amount, currency_code=None, decimal_places=None):
    """
    Round amount half-up to the decimal places of the currency.

    Args:
        amount: Amount to round
        currency_code: Currency code (two decimal places when omitted)
        decimal_places: Places to keep for currencies with a minor unit

    Returns:
        Decimal: Rounded amount

    Example:
        >>> round_to_currency(1500000.565)  # 1500000.57
        >>> round_to_currency(1500.5, 'JPY')  # 1501
        >>> round_to_currency('2.5', 'INR', 0)  # 3
    """
    try:
        amount = Decimal(str(amount))

        if currency_code in ZERO_DECIMAL_CURRENCIES:
            return amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP)

        places = 2 if decimal_places is None else decimal_places
        return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)

    except (ValueError, TypeError, InvalidOperation):
        return Decimal('0.00')


# =============================================================================
# LOGGING UTILITIES
# =============================================================================

def log_user_action(user, action, details=None, level='INFO'):
    """
    Log user action for audit trail.

    Args:
        user: User object
        action: Action description
        details: Optional additional details dict
        level: Log level (INFO, WARNING, ERROR)

    Example:
        >>> log_user_action(
        >>>     request.user,
        >>>     'Fee Collected',
        >>>     {'receipt': collection.receipt_number, 'amount': collection.total_amount}
        >>> )
    """
    username = getattr(user, 'username', None) or 'anonymous'
    log_message = f"User: {username} | Action: {action}"

    if details:
        log_message += f" | Details: {details}"

    log_func = getattr(logger, level.lower(), logger.info)
    log_func(log_message)
