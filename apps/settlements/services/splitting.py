"""
Fixed-point share calculation for expenses.

All amounts are Decimals with two decimal places. Even splits round each
share half away from zero and put the leftover cent(s) on the last
beneficiary in submitted order, so the shares always sum exactly to the
expense amount::

    >>> split_evenly(Decimal('100.00'), [a, b, c])
    [(a, Decimal('33.33')), (b, Decimal('33.33')), (c, Decimal('33.34'))]
"""

from decimal import Decimal, ROUND_HALF_UP

from .exceptions import InvalidSplitError

CENT = Decimal('0.01')
ZERO = Decimal('0.00')


def quantize_amount(value) -> Decimal:
    """Round to cents, half away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def split_evenly(amount, member_ids):
    """
    Split ``amount`` evenly among ``member_ids``.

    Args:
        amount: Expense total (Decimal or str).
        member_ids: Beneficiary ids in submitted order.

    Returns:
        list of (member_id, share) tuples in the same order.

    Raises:
        InvalidSplitError: If there are no beneficiaries, duplicates, or
            the amount is too small for the rounded shares to stay >= 0.
    """
    member_ids = list(member_ids)
    if not member_ids:
        raise InvalidSplitError("At least one beneficiary required")
    _ensure_unique(member_ids)

    amount = quantize_amount(amount)
    count = len(member_ids)
    share = quantize_amount(amount / count)
    remainder = amount - share * count
    last_share = share + remainder

    if last_share < ZERO:
        raise InvalidSplitError(
            f"Amount {amount} is too small to split evenly among {count} beneficiaries"
        )

    shares = [(member_id, share) for member_id in member_ids[:-1]]
    shares.append((member_ids[-1], last_share))
    return shares


def build_explicit_shares(amount, shares):
    """
    Validate caller-supplied shares for an uneven split.

    Args:
        amount: Expense total.
        shares: Iterable of (member_id, share) pairs; share may be None
            when the caller forgot it.

    Returns:
        list of (member_id, Decimal share) tuples.

    Raises:
        InvalidSplitError: Missing or negative share, duplicate member,
            or shares that do not sum exactly to ``amount``.
    """
    shares = list(shares)
    if not shares:
        raise InvalidSplitError("At least one beneficiary required")
    _ensure_unique([member_id for member_id, _ in shares])

    amount = quantize_amount(amount)
    result = []
    for member_id, share in shares:
        if share is None:
            raise InvalidSplitError(
                "Every beneficiary needs a share when the expense is not evenly split"
            )
        share = Decimal(share)
        if share != share.quantize(CENT):
            raise InvalidSplitError(f"Share {share} has more than two decimal places")
        if share < ZERO:
            raise InvalidSplitError(f"Share {share} must not be negative")
        result.append((member_id, share.quantize(CENT)))

    total = sum((share for _, share in result), ZERO)
    if total != amount:
        raise InvalidSplitError(
            f"Sum of beneficiary shares {total} does not equal the expense amount {amount}"
        )
    return result


def _ensure_unique(member_ids):
    seen = set()
    for member_id in member_ids:
        key = str(member_id)
        if key in seen:
            raise InvalidSplitError(f"Beneficiary {member_id} listed more than once")
        seen.add(key)
