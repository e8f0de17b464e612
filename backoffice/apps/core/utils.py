"""
Utility functions for the back office.
"""
from django.conf import settings
from django.db.models import IntegerField, Max
from django.db.models.functions import Cast, Substr
from datetime import datetime


def generate_number(document_type, model_class, number_field='number'):
    """
    Generate a sequential number for documents.
    Format: PREFIX-YEAR-NUMBER (e.g., PDC-2025-0001)

    The sequence part is compared as an integer, so a series keeps counting
    once it outgrows its padding (PDC-2025-9999 is followed by PDC-2025-10000).

    Args:
        document_type: Key from NUMBER_SERIES settings (e.g., 'PDC')
        model_class: The model class to query for existing numbers
        number_field: The field name that stores the number

    Returns:
        str: Generated number
    """
    config = settings.NUMBER_SERIES.get(document_type, {})
    prefix = config.get('prefix', 'DOC')
    padding = config.get('padding', 4)

    year = datetime.now().year
    year_prefix = f"{prefix}-{year}-"

    # Highest sequence used this year
    filter_kwargs = {f'{number_field}__startswith': year_prefix}
    last_seq = model_class.objects.filter(**filter_kwargs).aggregate(
        last=Max(Cast(Substr(number_field, len(year_prefix) + 1), IntegerField()))
    )['last'] or 0

    new_seq = last_seq + 1
    return f"{year_prefix}{str(new_seq).zfill(padding)}"


def get_client_ip(request):
    """Get the client IP address from request."""
    if not request:
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None
