from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import func, select

from propdesk.domain.audit import activity_for
from propdesk.errors import NotFoundError, ReferentialIntegrityError, ValidationError
from propdesk.models import Advertisement, Booking, LedgerEntry
from propdesk.schemas import TenantOut
from propdesk.services import bookings, properties, publicity, tenants


def _mk_property(db, actor):
    owner = properties.add_owner(db, actor=actor, payload={"name": "Owner"})
    return properties.add_property(db, actor=actor, payload={"owner_id": owner.id, "name": "Maple 7", "address": "7 Maple"})


def _tenant(pid, **kw):
    out = {"property_id": pid, "name": "Rita", "lease_start": "2025-01-01", "lease_end": "2025-12-31", "rent_value": 1500}
    out.update(kw)
    return out


def test_renew_contract_extends_and_logs(db, admin):
    prop = _mk_property(db, admin)
    t = tenants.add_tenant(db, actor=admin, payload=_tenant(prop.id, negotiation_status="open"))

    t = tenants.renew_contract(db, actor=admin, tenant_id=t.id, payload={"new_lease_end": "2026-12-31", "new_rent_value": 1600})
    assert t.lease_end == date(2026, 12, 31)
    assert t.rent_value == 1600
    assert t.negotiation_status == "closed"

    out = TenantOut.model_validate(t)
    assert out.negotiation_log[-1]["event"] == "renewed"

    with pytest.raises(ValidationError):
        tenants.renew_contract(db, actor=admin, tenant_id=t.id, payload={"new_lease_end": "2026-06-30"})


def test_negotiation_updates_append_to_log(db, admin):
    prop = _mk_property(db, admin)
    t = tenants.add_tenant(db, actor=admin, payload=_tenant(prop.id))
    tenants.update_negotiation(db, actor=admin, tenant_id=t.id, payload={"status": "open"})
    t = tenants.update_negotiation(
        db, actor=admin, tenant_id=t.id, payload={"status": "proposal_sent", "suggested_renewal_price": 1580, "note": "sent by mail"}
    )
    log = TenantOut.model_validate(t).negotiation_log
    assert [e["to"] for e in log] == ["open", "proposal_sent"]
    assert t.suggested_renewal_price == 1580


def test_tenant_refs_and_lease_order(db, admin):
    with pytest.raises(ReferentialIntegrityError):
        tenants.add_tenant(db, actor=admin, payload=_tenant(42))
    with pytest.raises(ValidationError):
        tenants.add_tenant(db, actor=admin, payload=_tenant(None, lease_end="2024-06-01"))


def test_booking_dates_and_income_posting(db, admin):
    prop = _mk_property(db, admin)
    with pytest.raises(ValidationError):
        bookings.add_booking(
            db, actor=admin, payload={"property_id": prop.id, "guest_name": "Al", "check_in": "2026-07-02", "check_out": "2026-07-02"}
        )
    assert db.scalar(select(func.count(Booking.id))) == 0

    b = bookings.add_booking(
        db,
        actor=admin,
        payload={"property_id": prop.id, "guest_name": "Al", "check_in": "2026-07-02", "check_out": "2026-07-06", "total_amount": 480, "paid": True},
    )
    entry = db.scalar(select(LedgerEntry).where(LedgerEntry.reference == f"booking:{b.id}"))
    assert (entry.entry_type, entry.status) == ("income", "cleared")
    assert activity_for(db, "Property", prop.id)[0].entity == "Booking"

    bookings.delete_booking(db, actor=admin, booking_id=b.id)
    with pytest.raises(NotFoundError):
        bookings.delete_booking(db, actor=admin, booking_id=b.id)


def test_visits(db, admin):
    prop = _mk_property(db, admin)
    v = bookings.add_visit(
        db, actor=admin, payload={"property_id": prop.id, "visitor_name": "Nia", "scheduled_at": "2026-08-01T10:00:00"}
    )
    v = bookings.update_visit(
        db,
        actor=admin,
        visit_id=v.id,
        payload={"property_id": prop.id, "visitor_name": "Nia", "scheduled_at": "2026-08-01T10:00:00", "status": "done"},
    )
    assert v.status == "done"
    bookings.delete_visit(db, actor=admin, visit_id=v.id)


def test_advertisements(db, admin):
    ad = publicity.add_advertisement(db, actor=admin, payload={"title": "Summer", "advertiser": "Pool Co", "price": 50})
    with pytest.raises(ValidationError):
        publicity.update_advertisement(
            db,
            actor=admin,
            advertisement_id=ad.id,
            payload={"title": "Summer", "advertiser": "Pool Co", "start_date": "2026-06-10", "end_date": "2026-06-01"},
        )
    ad = publicity.update_advertisement(
        db, actor=admin, advertisement_id=ad.id, payload={"title": "Summer", "advertiser": "Pool Co", "status": "paused"}
    )
    assert ad.status == "paused"
    publicity.delete_advertisement(db, actor=admin, advertisement_id=ad.id)
    assert db.scalar(select(func.count(Advertisement.id))) == 0
