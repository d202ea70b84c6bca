"""Template selection and template field building for job items.

An item falls into one of three billing buckets based on the days left
until its expiration date. The owner's template for that bucket is chosen
by category, and the item plus the seller profile provide the placeholder
values.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, Optional

from bulk_messenger.domain.models import (
    JobItem,
    MessageTemplate,
    NotificationType,
    ProfileData,
    TemplateType,
)
from bulk_messenger.utils.timestamps import parse_calendar_date

DEFAULT_CATEGORY = "iptv"

# Maximum days left that still counts as "expiring soon"
EXPIRING_SOON_DAYS = 3

_NOTIFICATION_TYPES = {
    TemplateType.EXPIRED: NotificationType.EXPIRED,
    TemplateType.EXPIRING_SOON: NotificationType.EXPIRING_SOON,
    TemplateType.BILLING: NotificationType.BILLING,
}


def days_until(expiration_date: date, today: date) -> int:
    """Whole calendar days from today to expiration_date (negative if past)."""
    return (expiration_date - today).days


def days_remaining(item: JobItem, today: date) -> int:
    """Days left for an item, preferring the explicit days_remaining override.

    Raises:
        ValueError: If the override is not a whole number, or there is no
            override and the expiration date is missing or invalid
    """
    if isinstance(item.days_remaining, int):
        return item.days_remaining
    if item.days_remaining is not None:
        raise ValueError(f"Invalid days remaining: {item.days_remaining!r}")

    try:
        expiration = parse_calendar_date(item.expiration_date)
    except ValueError as e:
        raise ValueError(f"Invalid expiration date: {e}") from e
    return days_until(expiration, today)


def classify(days_left: int) -> TemplateType:
    if days_left <= 0:
        return TemplateType.EXPIRED
    if days_left <= EXPIRING_SOON_DAYS:
        return TemplateType.EXPIRING_SOON
    return TemplateType.BILLING


def notification_type_for(template_type: TemplateType) -> NotificationType:
    return _NOTIFICATION_TYPES[template_type]


def select_template(
    templates: Iterable[MessageTemplate],
    template_type: TemplateType,
    category: Optional[str],
    default_category: str = DEFAULT_CATEGORY,
) -> Optional[MessageTemplate]:
    """Pick the owner's template for a bucket and category.

    The first template of the bucket whose name contains the category
    (case-insensitive) wins; otherwise the first template of the bucket;
    otherwise None.
    """
    category_lower = (category or default_category).lower()
    candidates = [t for t in templates if t.template_type == template_type]

    for template in candidates:
        if category_lower in template.name.lower():
            return template

    return candidates[0] if candidates else None


def format_amount(value) -> str:
    """Format a price without a trailing .0 (29.9 -> '29.9', 30.0 -> '30')."""
    if value is None or value == "":
        return "0"
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return str(value)

    if not amount.is_finite():
        return str(value)
    if amount == amount.to_integral_value():
        return str(amount.quantize(Decimal(1)))
    return format(amount.normalize(), "f")


def format_date_br(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def build_fields(item: JobItem, profile: ProfileData, days_left: int) -> Dict[str, str]:
    """Build the placeholder values available to a template for one item.

    vencimento is empty when the item carries no parseable expiration date
    (possible only when days_remaining was supplied explicitly).
    """
    try:
        due_date = format_date_br(parse_calendar_date(item.expiration_date))
    except ValueError:
        due_date = ""

    return {
        "nome": item.name or "",
        "empresa": profile.company_name or profile.full_name or "",
        "vencimento": due_date,
        "dias_restantes": str(days_left),
        "valor": format_amount(item.plan_price),
        "plano": item.plan_name or "",
        "pix": profile.pix_key or "",
        "servico": item.category or "IPTV",
    }
