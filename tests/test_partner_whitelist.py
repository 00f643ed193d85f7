from __future__ import annotations

import pytest
from sqlalchemy import func, select

from propdesk.domain.property_scope import PropertyScope, normalize_scope
from propdesk.errors import ReferentialIntegrityError, ValidationError
from propdesk.models import Partner, PartnerPropertyLink, Task
from propdesk.schemas import PartnerOut
from propdesk.services import partners, properties, tasks


def _mk_properties(db, actor, n=2):
    owner = properties.add_owner(db, actor=actor, payload={"name": "Owner"})
    return [
        properties.add_property(db, actor=actor, payload={"owner_id": owner.id, "name": f"Unit {i}", "address": f"{i} Oak"})
        for i in range(n)
    ]


def _task(pid, partner_id, **kw):
    out = {"property_id": pid, "title": "Service call", "assignee_kind": "partner", "assignee_id": partner_id}
    out.update(kw)
    return out


def test_scope_states_are_distinct():
    assert PropertyScope.unrestricted().allows(5)
    assert not PropertyScope.restricted_to([]).allows(5)
    assert PropertyScope.restricted_to([5]).allows(5)

    assert normalize_scope(None, []) == ("unrestricted", [])
    assert normalize_scope(None, [3, 1, 3]) == ("restricted", [1, 3])
    assert normalize_scope("restricted", []) == ("restricted", [])
    with pytest.raises(ValidationError):
        normalize_scope("unrestricted", [1])


def test_restricted_partner_only_gets_linked_properties(db, admin):
    p1, p2 = _mk_properties(db, admin)
    partner = partners.add_partner(db, actor=admin, payload={"name": "Pool Pros", "linked_property_ids": [p1.id]})
    assert partner.property_scope == "restricted"
    assert partner.linked_property_ids == [p1.id]

    tasks.add_task(db, actor=admin, payload=_task(p1.id, partner.id))
    with pytest.raises(ValidationError):
        tasks.add_task(db, actor=admin, payload=_task(p2.id, partner.id))
    assert db.scalar(select(func.count(Task.id))) == 1


def test_restricted_to_nothing_blocks_everything(db, admin):
    p1, _ = _mk_properties(db, admin)
    partner = partners.add_partner(db, actor=admin, payload={"name": "Idle Co", "property_scope": "restricted"})
    with pytest.raises(ValidationError):
        tasks.add_task(db, actor=admin, payload=_task(p1.id, partner.id))


def test_unrestricted_partner_takes_any_property(db, admin):
    p1, p2 = _mk_properties(db, admin)
    partner = partners.add_partner(db, actor=admin, payload={"name": "Anywhere", "property_scope": "unrestricted"})
    for p in (p1, p2):
        tasks.add_task(db, actor=admin, payload=_task(p.id, partner.id))


def test_contradictory_scope_is_rejected(db, admin):
    p1, _ = _mk_properties(db, admin)
    with pytest.raises(ValidationError):
        partners.add_partner(
            db, actor=admin, payload={"name": "Confused", "property_scope": "unrestricted", "linked_property_ids": [p1.id]}
        )
    assert db.scalar(select(func.count(Partner.id))) == 0


def test_links_must_point_at_real_properties(db, admin):
    with pytest.raises(ReferentialIntegrityError) as ei:
        partners.add_partner(db, actor=admin, payload={"name": "Ghost", "linked_property_ids": [77]})
    assert ei.value.field == "linked_property_ids"


def test_inactive_partner_cannot_be_assigned(db, admin):
    p1, _ = _mk_properties(db, admin)
    partner = partners.add_partner(db, actor=admin, payload={"name": "Retired"})
    partners.deactivate_partner(db, actor=admin, partner_id=partner.id)
    with pytest.raises(ValidationError):
        tasks.add_task(db, actor=admin, payload=_task(p1.id, partner.id))


def test_existing_assignment_survives_scope_narrowing(db, admin):
    p1, p2, p3 = _mk_properties(db, admin, n=3)
    partner = partners.add_partner(db, actor=admin, payload={"name": "Roofers"})
    t = tasks.add_task(db, actor=admin, payload=_task(p3.id, partner.id))

    partners.update_partner(
        db, actor=admin, partner_id=partner.id, payload={"name": "Roofers", "linked_property_ids": [p1.id]}
    )

    # unrelated edits keep working; moving the task re-checks the scope
    t = tasks.update_task(db, actor=admin, task_id=t.id, payload=_task(p3.id, partner.id, title="Roof leak"))
    assert t.title == "Roof leak"

    with pytest.raises(ValidationError):
        tasks.update_task(db, actor=admin, task_id=t.id, payload=_task(p2.id, partner.id, title="Roof leak"))

    t = tasks.update_task(db, actor=admin, task_id=t.id, payload=_task(p1.id, partner.id, title="Roof leak"))
    assert t.property_id == p1.id


def test_update_replaces_links_and_documents(db, admin):
    p1, p2 = _mk_properties(db, admin)
    partner = partners.add_partner(
        db,
        actor=admin,
        payload={
            "name": "Sparky",
            "linked_property_ids": [p1.id, p2.id],
            "documents": [{"ref": "docs/license.pdf", "name": "License"}, {"ref": "docs/insurance.pdf"}],
        },
    )
    partner = partners.update_partner(
        db,
        actor=admin,
        partner_id=partner.id,
        payload={"name": "Sparky", "linked_property_ids": [p2.id], "documents": [{"ref": "docs/insurance.pdf"}]},
    )
    assert partner.linked_property_ids == [p2.id]
    assert [d.ref for d in partner.documents] == ["docs/insurance.pdf"]
    assert db.scalar(select(func.count(PartnerPropertyLink.id))) == 1

    out = PartnerOut.model_validate(partner)
    assert out.property_scope == "restricted"
    assert out.documents[0].position == 0


def test_partner_rates(db, admin):
    partner = partners.add_partner(db, actor=admin, payload={"name": "Cleaners"})
    cat = partners.add_service_category(db, actor=admin, payload={"name": "Cleaning"})
    rate = partners.add_partner_service_rate(
        db, actor=admin, partner_id=partner.id, payload={"service_name": " Turnover clean ", "price": 80, "category_id": cat.id}
    )
    assert rate.service_name == "Turnover clean"
    assert rate.partner_id == partner.id

    with pytest.raises(ValidationError):
        partners.delete_service_category(db, actor=admin, category_id=cat.id)
    with pytest.raises(ValidationError):
        partners.add_service_category(db, actor=admin, payload={"name": "cleaning"})

    partners.delete_partner_service_rate(db, actor=admin, partner_id=partner.id, rate_id=rate.id)
    partners.delete_service_category(db, actor=admin, category_id=cat.id)
