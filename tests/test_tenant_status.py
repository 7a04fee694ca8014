import pytest
from sqlalchemy.dialects import postgresql

from platform_console.core.errors import ConflictError, NotFoundError
from platform_console.core.startup_checks import SchemaCapabilities
from platform_console.models.audit_log import AuditLog
from platform_console.models.campaign import Campaign
from platform_console.models.order import Order
from platform_console.models.tenant import Tenant
from platform_console.models.user import User
from platform_console.services.audit_trail import AuditTrail, parse_details
from platform_console.services.tenant_status import TenantStatusService
from tests.fixtures_data import BURGER_HOUSE_ID, PIZZA_PLACE_ID, TACO_STAND_ID, build_seeded_session


def _service(capabilities: SchemaCapabilities = SchemaCapabilities()):
    db = build_seeded_session()
    return db, TenantStatusService(db, AuditTrail(db), capabilities)


def test_deactivate_cascades_to_users_and_campaigns_but_keeps_orders():
    db, service = _service()
    orders_before = db.query(Order).filter(Order.tenant_id == BURGER_HOUSE_ID).count()

    result = service.set_tenant_status(BURGER_HOUSE_ID, False, actor_id=7, actor_role="platform_admin")

    assert result.users_updated == 2
    assert result.campaigns_updated == 2
    assert result.dependents_updated == 2
    assert result.orders_retained is True
    assert db.get(Tenant, BURGER_HOUSE_ID).is_active is False
    users = db.query(User).filter(User.tenant_id == BURGER_HOUSE_ID).all()
    assert all(user.is_active is False for user in users)
    campaigns = db.query(Campaign).filter(Campaign.tenant_id == BURGER_HOUSE_ID).all()
    assert all(campaign.is_active is False for campaign in campaigns)
    assert db.query(Order).filter(Order.tenant_id == BURGER_HOUSE_ID).count() == orders_before
    assert db.get(User, 20).is_active is True

    entry = db.query(AuditLog).one()
    details = parse_details(entry.details_json)
    assert entry.action == "restaurant.deactivated"
    assert details["restaurant_name"] == "Burger House"
    assert details["users_updated"] == 2
    assert details["orders_retained"] is True
    assert details["actor_role"] == "platform_admin"


def test_reactivate_restores_dependents():
    db, service = _service()
    service.set_tenant_status(BURGER_HOUSE_ID, False)

    result = service.set_tenant_status(BURGER_HOUSE_ID, True)

    assert result.is_active is True
    assert db.get(User, 11).is_active is True
    assert db.query(AuditLog).filter(AuditLog.action == "restaurant.activated").count() == 1


def test_campaigns_untouched_without_active_flag_capability():
    db, service = _service(SchemaCapabilities(campaigns_support_active_flag=False))

    result = service.set_tenant_status(BURGER_HOUSE_ID, False)

    assert result.campaigns_updated == 0
    assert db.query(Campaign).filter(Campaign.is_active.is_(False)).count() == 0


def test_last_active_tenant_cannot_be_deactivated():
    db, service = _service()
    service.set_tenant_status(PIZZA_PLACE_ID, False)
    service.set_tenant_status(TACO_STAND_ID, False)

    with pytest.raises(ConflictError) as exc:
        service.set_tenant_status(BURGER_HOUSE_ID, False)

    assert exc.value.message == "Cannot deactivate the last active restaurant"
    assert db.get(Tenant, BURGER_HOUSE_ID).is_active is True
    assert db.get(User, 10).is_active is True
    assert db.query(AuditLog).filter(AuditLog.entity_id == str(BURGER_HOUSE_ID)).count() == 0


def test_active_tenant_count_never_reaches_zero():
    db, service = _service()

    for tenant_id in (BURGER_HOUSE_ID, PIZZA_PLACE_ID, TACO_STAND_ID):
        try:
            service.set_tenant_status(tenant_id, False)
        except ConflictError:
            pass
        assert db.query(Tenant).filter(Tenant.is_active.is_(True)).count() >= 1


def test_unknown_tenant_is_not_found():
    _, service = _service()

    with pytest.raises(NotFoundError):
        service.set_tenant_status(999, False)


def test_tenant_locks_are_taken_in_one_ordered_statement():
    _, service = _service()

    sql = str(service.locked_tenants_query(TACO_STAND_ID).statement.compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE" in sql
    assert "ORDER BY tenants.id ASC" in sql
    assert "tenants.is_active IS true OR tenants.id =" in sql


def test_deactivating_inactive_target_still_reads_it_under_lock():
    db, service = _service()
    service.set_tenant_status(PIZZA_PLACE_ID, False)

    locked_ids = [row.id for row in service.locked_tenants_query(PIZZA_PLACE_ID).all()]
    result = service.set_tenant_status(PIZZA_PLACE_ID, False)

    assert locked_ids == [BURGER_HOUSE_ID, PIZZA_PLACE_ID, TACO_STAND_ID]
    assert result.is_active is False
    assert db.get(Tenant, PIZZA_PLACE_ID).is_active is False
