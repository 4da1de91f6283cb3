"""Syntactic checks run before a request reaches any account."""

from typing import Any, List

from errors import ValidationReason, ValidationRejectedError
from models import TransactionIntent, TransactionKind

MIN_DESCRIPTION_LENGTH = 1
MAX_DESCRIPTION_LENGTH = 10


def _parse_kind(kind: Any):
    if not isinstance(kind, str):
        return None
    try:
        return TransactionKind(kind)
    except ValueError:
        return None


def _is_positive_int(amount: Any) -> bool:
    # bool is an int subclass; True is not an amount
    return isinstance(amount, int) and not isinstance(amount, bool) and amount > 0


def _has_valid_length(description: Any) -> bool:
    # len() counts code points, so multi-byte characters count once
    return (
        isinstance(description, str)
        and MIN_DESCRIPTION_LENGTH <= len(description) <= MAX_DESCRIPTION_LENGTH
    )


def validate_transaction(request: Any) -> TransactionIntent:
    """Check ``request.kind``, ``request.amount`` and ``request.description``.

    Every rule is evaluated; the raised error lists all failures in rule
    order. Returns a typed intent when the request is well formed.
    """
    kind = _parse_kind(request.kind)
    failures: List[ValidationReason] = []

    if kind is None:
        failures.append(ValidationReason.invalid_kind)
    if not _is_positive_int(request.amount):
        failures.append(ValidationReason.non_positive_amount)
    if not _has_valid_length(request.description):
        failures.append(ValidationReason.invalid_description_length)

    if failures:
        raise ValidationRejectedError(failures)

    return TransactionIntent(
        amount=request.amount,
        kind=kind,
        description=request.description,
    )
