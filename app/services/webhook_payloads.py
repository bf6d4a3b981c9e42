from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from app.core.errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 320
MAX_TRANSACTION_ID_LENGTH = 255
MAX_NAME_LENGTH = 255
DEFAULT_END_REASON = "Mentorship ended"


@dataclass(frozen=True, slots=True)
class PurchaseEvent:
    email: str
    offer_id: str
    transaction_id: str | None
    amount: Decimal | None
    currency: str | None
    subject_name: str | None


@dataclass(frozen=True, slots=True)
class CancellationEvent:
    email: str
    offer_id: str | None
    reason: str


def _section(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def _first_present(*candidates: object) -> object | None:
    for candidate in candidates:
        if candidate is None:
            continue
        if isinstance(candidate, str) and not candidate.strip():
            continue
        return candidate
    return None


def _optional_text(value: object, *, max_length: int) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    return cleaned[:max_length]


def normalize_email(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("email is required", details={"field": "email"})
    email = value.strip().lower()
    if len(email) > MAX_EMAIL_LENGTH or EMAIL_RE.match(email) is None:
        raise ValidationError("email must be a valid email address", details={"field": "email"})
    return email


def normalize_offer_id(value: object) -> str:
    """Positive integer or its decimal string form; returned as the canonical string."""
    if isinstance(value, bool) or value is None:
        raise ValidationError("offer_id is required", details={"field": "offer_id"})
    if isinstance(value, int):
        offer_id = value
    elif isinstance(value, str) and value.strip().isdigit():
        offer_id = int(value.strip())
    else:
        raise ValidationError("offer_id must be a positive integer", details={"field": "offer_id"})
    if offer_id <= 0:
        raise ValidationError("offer_id must be a positive integer", details={"field": "offer_id"})
    return str(offer_id)


def _parse_amount(value: object) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount.quantize(Decimal("0.01"))


def _parse_currency(value: object) -> str | None:
    currency = _optional_text(value, max_length=8)
    return currency.upper() if currency is not None else None


def _subject_name(member: dict[str, object], nested: dict[str, object], payload: dict[str, object]) -> str | None:
    name = _first_present(member.get("name"), nested.get("member_name"), payload.get("name"))
    if name is None:
        parts = [member.get("first_name"), member.get("last_name")]
        joined = " ".join(part.strip() for part in parts if isinstance(part, str) and part.strip())
        name = joined or None
    return _optional_text(name, max_length=MAX_NAME_LENGTH)


def parse_purchase_payload(payload: object) -> PurchaseEvent:
    """Extracts a purchase from the flat (``member.email``/``offer.id``), nested
    (``payload.member_email``/``payload.offer_id``) or top-level (``email``/
    ``offer_id``) webhook shape. Only email and offer id are mandatory."""
    if not isinstance(payload, dict):
        raise ValidationError("payload must be a JSON object")

    member = _section(payload, "member")
    offer = _section(payload, "offer")
    nested = _section(payload, "payload")
    transaction = _section(payload, "transaction")

    email = normalize_email(
        _first_present(member.get("email"), nested.get("member_email"), payload.get("email"))
    )
    offer_id = normalize_offer_id(
        _first_present(offer.get("id"), nested.get("offer_id"), payload.get("offer_id"))
    )
    transaction_id = _optional_text(
        _first_present(
            transaction.get("id"),
            nested.get("transaction_id"),
            payload.get("transaction_id"),
        ),
        max_length=MAX_TRANSACTION_ID_LENGTH,
    )
    amount = _parse_amount(
        _first_present(
            transaction.get("amount"),
            nested.get("amount_paid"),
            nested.get("amount"),
            payload.get("amount_paid"),
            payload.get("amount"),
        )
    )
    currency = _parse_currency(
        _first_present(transaction.get("currency"), nested.get("currency"), payload.get("currency"))
    )
    return PurchaseEvent(
        email=email,
        offer_id=offer_id,
        transaction_id=transaction_id,
        amount=amount,
        currency=currency,
        subject_name=_subject_name(member, nested, payload),
    )


def parse_cancellation_payload(payload: object) -> CancellationEvent:
    if not isinstance(payload, dict):
        raise ValidationError("payload must be a JSON object")

    member = _section(payload, "member")
    offer = _section(payload, "offer")
    nested = _section(payload, "payload")

    email = normalize_email(
        _first_present(member.get("email"), nested.get("member_email"), payload.get("email"))
    )
    raw_offer_id = _first_present(offer.get("id"), nested.get("offer_id"), payload.get("offer_id"))
    offer_id = normalize_offer_id(raw_offer_id) if raw_offer_id is not None else None
    reason = _optional_text(
        _first_present(nested.get("reason"), payload.get("reason"), payload.get("event")),
        max_length=64,
    )
    return CancellationEvent(email=email, offer_id=offer_id, reason=reason or DEFAULT_END_REASON)
