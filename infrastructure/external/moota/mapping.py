"""
Moota payload -> domain mapping.

Moota reports amounts as numbers or numeric strings and timestamps as naive
"YYYY-MM-DD HH:MM:SS" in Indonesian local time, so naive values are read in the
business timezone.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone, tzinfo
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional, Tuple

from domain.payment.entity import BankAccount, BankMutation, MutationType
from shared.codes.payment_codes import MUTATION_TYPE_TO_INTERNAL

from .exceptions import MutationPayloadError


TIMESTAMP_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d")


def parse_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).replace(",", ""))
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_amount(value: Any) -> int:
    number = parse_decimal(value)
    if number is None:
        raise MutationPayloadError(f"invalid amount {value!r}")
    return int(number.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_timestamp(value: Any, tz: tzinfo) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        dt = None
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in TIMESTAMP_FORMATS:
                try:
                    dt = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if dt is None:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(timezone.utc)


def parse_mutation_type(value: Any) -> MutationType:
    internal = MUTATION_TYPE_TO_INTERNAL.get(str(value or "").strip().upper())
    if internal is None:
        raise MutationPayloadError(f"unknown mutation type {value!r}")
    return MutationType(internal)


def mutation_from_payload(
    item: dict,
    tz: tzinfo,
    *,
    bank_id: Optional[str] = None,
    account_number: Optional[str] = None,
) -> BankMutation:
    """Build a BankMutation from one REST or webhook record."""
    if not isinstance(item, dict):
        raise MutationPayloadError("mutation record is not an object")
    mutation_id = item.get("mutation_id") or item.get("id")
    if not mutation_id:
        raise MutationPayloadError("mutation id missing")
    occurred_at = (
        parse_timestamp(item.get("created_at"), tz)
        or parse_timestamp(item.get("date"), tz)
    )
    if occurred_at is None:
        raise MutationPayloadError(f"mutation {mutation_id} has no timestamp")
    return BankMutation(
        mutation_id=str(mutation_id),
        amount=parse_amount(item.get("amount")),
        type=parse_mutation_type(item.get("type")),
        occurred_at=occurred_at,
        bank_account_id=str(item.get("bank_id") or bank_id or "") or None,
        account_number=str(item.get("account_number") or account_number or "") or None,
        description=str(item.get("description") or item.get("note") or ""),
        balance=parse_decimal(item.get("balance")),
    )


def mutations_from_payload(items: Iterable[Any], tz: tzinfo) -> List[BankMutation]:
    """Strict variant for REST responses: malformed records are dropped."""
    result: List[BankMutation] = []
    for item in items or []:
        try:
            result.append(mutation_from_payload(item, tz))
        except MutationPayloadError:
            continue
    return result


def account_from_payload(item: dict) -> BankAccount:
    return BankAccount(
        bank_id=str(item.get("bank_id") or item.get("id") or ""),
        account_number=str(item.get("account_number") or ""),
        bank_type=str(item.get("bank_type") or ""),
        account_name=str(item.get("atas_nama") or item.get("account_name") or ""),
        username=str(item.get("username") or ""),
        balance=parse_decimal(item.get("balance")) or Decimal("0"),
        is_active=bool(item.get("is_active", True)),
    )


def parse_webhook_payload(body: bytes, tz: tzinfo) -> Tuple[List[BankMutation], List[str]]:
    """
    Decode a webhook body into mutations.

    Accepted shapes: a JSON array of mutations, a single mutation object, or an
    envelope {"bank_id", "account_number", "mutations": [...]}. Records that fail
    to parse are reported in the second list instead of failing the batch; a body
    that is not JSON at all raises MutationPayloadError.
    """
    try:
        decoded = json.loads(body or b"null")
    except ValueError as exc:
        raise MutationPayloadError(f"body is not valid JSON: {exc}") from exc

    bank_id = account_number = None
    if isinstance(decoded, dict) and isinstance(decoded.get("mutations"), list):
        bank_id = decoded.get("bank_id") or decoded.get("account_id")
        account_number = decoded.get("account_number")
        records = decoded["mutations"]
    elif isinstance(decoded, dict):
        records = [decoded]
    elif isinstance(decoded, list):
        records = decoded
    else:
        raise MutationPayloadError("body must be a mutation object or array")

    mutations: List[BankMutation] = []
    errors: List[str] = []
    for index, item in enumerate(records):
        try:
            mutations.append(mutation_from_payload(item, tz, bank_id=bank_id, account_number=account_number))
        except MutationPayloadError as exc:
            ref = item.get("mutation_id") or item.get("id") if isinstance(item, dict) else None
            errors.append(f"Failed to parse mutation {ref or f'#{index}'}: {exc}")
    return mutations, errors
