"""Pipedrive payload mapping -- raw API dicts to normalized CRM schemas.

Defines:
- normalize_owner_id(): Owner reference (nested user object or bare id) to int.
- deal_from_payload(): Pipedrive deal dict to CRMDeal.
- user_from_payload(): Pipedrive user dict to CRMUser.
- sale_date_for(): The date a won deal is booked on.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from src.ledger.sales.schemas import CRMDeal, CRMUser


def normalize_owner_id(raw: Any) -> int | None:
    """Reduce a Pipedrive owner reference to a plain integer id.

    The deals API returns ``user_id`` either as a nested object
    (``{"id": 7, "name": ...}``) or as a bare integer depending on the
    endpoint and account settings.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, dict):
        return normalize_owner_id(raw.get("id") if "id" in raw else raw.get("value"))
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _owner_name(raw: Any, fallback: Any = None) -> str | None:
    if isinstance(raw, dict) and raw.get("name"):
        return str(raw["name"])
    return str(fallback) if fallback else None


def deal_from_payload(payload: dict[str, Any]) -> CRMDeal:
    """Convert a Pipedrive deal dict to CRMDeal."""
    owner_raw = payload.get("user_id")
    if owner_raw is None:
        owner_raw = payload.get("owner_id")

    return CRMDeal(
        id=int(payload["id"]),
        title=payload.get("title") or "",
        value=float(payload.get("value") or 0.0),
        currency=payload.get("currency"),
        status=payload.get("status") or "won",
        won_time=payload.get("won_time"),
        close_time=payload.get("close_time"),
        add_time=payload.get("add_time"),
        owner_id=normalize_owner_id(owner_raw),
        owner_name=_owner_name(owner_raw, payload.get("owner_name")),
    )


def user_from_payload(payload: dict[str, Any]) -> CRMUser:
    """Convert a Pipedrive user dict to CRMUser."""
    return CRMUser(
        id=int(payload["id"]),
        name=payload.get("name") or "",
        email=payload.get("email"),
        active_flag=bool(payload.get("active_flag", True)),
    )


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    # Pipedrive timestamps look like "2024-03-15 14:02:11"
    try:
        return datetime.fromisoformat(value.strip().replace(" ", "T")).date()
    except ValueError:
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None


def sale_date_for(deal: CRMDeal, today: date) -> date:
    """Booking date of a won deal: won_time, else close_time, else today."""
    return _parse_date(deal.won_time) or _parse_date(deal.close_time) or today
