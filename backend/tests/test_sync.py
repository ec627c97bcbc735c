# Overview: Pytest coverage for the sync engine state machine, push payloads and reconciliation.

"""
Sync Engine Tests

The engine runs on a ManualScheduler so debounce windows and retries are
driven explicitly with scheduler.advance(seconds). The remote authority is an
httpx.MockTransport recording every pushed payload.
"""

from possync.extensions import db
from possync.models import Product, SYNCED_MODELS
from possync.services.inventory_service import adjust_stock
from possync.services.lifecycle_service import create_entity, update_entity, delete_entity
from possync.services.sales_service import LineItem, SaleDraft, record_sale
from possync.services.sync_service import (
    DEBOUNCING,
    IDLE,
    ManualScheduler,
    RemoteClient,
    SyncEngine,
)
from possync.services.tenant_service import get_session_provider


class TestDebounce:
    def test_signal_waits_for_the_window(self, app, engine, scheduler, remote, scope_a, make_product):
        make_product(scope_a)

        assert engine.state == DEBOUNCING
        scheduler.advance(1.9)
        assert remote.requests == []

        scheduler.advance(0.2)
        assert len(remote.requests) == 1
        assert engine.state == IDLE

    def test_burst_of_writes_coalesces_into_one_push(self, app, engine, scheduler, remote, scope_a, make_product):
        make_product(scope_a, name="Coffee")
        scheduler.advance(1.5)
        make_product(scope_a, name="Tea")
        scheduler.advance(1.5)
        assert remote.requests == []

        scheduler.advance(0.5)

        assert len(remote.requests) == 1
        names = sorted(p["name"] for p in remote.payloads[0]["changes"]["products"])
        assert names == ["Coffee", "Tea"]

    def test_sale_and_its_stock_changes_travel_together(self, app, scheduler, remote, scope_a, make_product):
        pid = make_product(scope_a)
        scheduler.advance(2)

        adjust_stock(scope_a, pid, 5, "delivery")
        record_sale(scope_a, SaleDraft([LineItem(pid, "Coffee", 500, 3)], "cash", 1500, 1500))
        scheduler.advance(2)

        changes = remote.payloads[-1]["changes"]
        assert set(changes) == {"products", "sales", "stockMovements"}
        assert changes["products"][0]["stock"] == 12

    def test_reconciliation_does_not_signal_again(self, app, engine, scheduler, remote, scope_a, make_product):
        make_product(scope_a)
        scheduler.advance(2)

        assert engine.state == IDLE
        assert scheduler.pending == []


class TestPushAndReconcile:
    def test_payload_shape(self, app, scheduler, remote, scope_a, make_product, make_customer):
        cid = make_customer(scope_a)
        pid = make_product(scope_a)
        record_sale(scope_a, SaleDraft(
            [LineItem(pid, "Coffee", 500, 1)], "cash", 500, 500,
            payment_details={"amount_given": 1000},
            customer_id=cid,
        ))
        scheduler.advance(2)

        request = remote.requests[0]
        assert request["headers"]["authorization"] == "Bearer test-key"

        payload = request["payload"]
        assert payload["companyId"] == "comp_boutique_soa"
        assert payload["posId"] == "pos_caisse_1"

        sale = payload["changes"]["sales"][0]
        assert sale["customerId"] == cid
        assert sale["paymentMethod"] == "cash"
        assert sale["paymentDetails"] == {"amountGiven": 1000, "change": 500}
        assert sale["_deleted"] is False
        assert sale["createdAt"].endswith("Z")
        assert "syncStatus" not in sale
        assert "versionId" not in sale

    def test_movement_pushed_by_its_sync_identity(self, app, scheduler, remote, scope_a, make_product):
        pid = make_product(scope_a)
        movement = adjust_stock(scope_a, pid, 5, "delivery")
        scheduler.advance(2)

        pushed = remote.payloads[0]["changes"]["stockMovements"][0]
        assert pushed["movementId"] == movement.movement_id
        assert pushed["quantityChange"] == 5
        assert "id" not in pushed
        assert "syncStatus" not in pushed
        assert "versionId" not in pushed

    def test_success_marks_records_synced(self, app, engine, scheduler, scope_a, make_product):
        pid = make_product(scope_a)
        scheduler.advance(2)

        assert db.session.get(Product, pid).sync_status == "synced"
        assert engine.last_result.outcome == "ok"
        assert engine.last_result.synced == 1

    def test_delete_then_flush_purges(self, app, engine, scheduler, scope_a, make_product):
        pid = make_product(scope_a)
        scheduler.advance(2)

        delete_entity(scope_a, "products", pid)
        scheduler.advance(2)

        assert db.session.get(Product, pid) is None
        assert engine.last_result.purged == 1

    def test_delete_with_failed_flush_stays_flagged(self, app, scheduler, remote, scope_a, make_product):
        pid = make_product(scope_a)
        scheduler.advance(2)

        remote.fail_status = 503
        delete_entity(scope_a, "products", pid)
        scheduler.advance(2)

        product = db.session.get(Product, pid)
        assert product is not None
        assert product.deleted is True
        assert product.sync_status == "pending"

    def test_second_flush_without_changes_makes_no_call(self, app, engine, scheduler, remote, scope_a, make_product):
        make_product(scope_a)
        scheduler.advance(2)
        assert len(remote.requests) == 1

        result = engine.flush()

        assert result.outcome == "noop"
        assert len(remote.requests) == 1

    def test_only_active_scope_is_pushed(self, app, scheduler, remote, scope_a, scope_b, make_product):
        make_product(scope_a, name="Mine")
        pid_b = make_product(scope_b, name="Theirs")
        scheduler.advance(2)

        pushed = [p["name"] for p in remote.payloads[0]["changes"]["products"]]
        assert pushed == ["Mine"]
        assert db.session.get(Product, pid_b).sync_status == "pending"

    def test_no_session_aborts_silently(self, app, engine, remote, scope_a, make_product):
        make_product(scope_a)
        get_session_provider().logout()

        result = engine.flush()

        assert result.outcome == "no_session"
        assert remote.requests == []


class TestInFlightChanges:
    def test_record_changed_during_push_stays_pending(self, app, engine, scheduler, remote, scope_a, make_product):
        pid = make_product(scope_a)

        def edit_during_push(payload):
            remote.on_push = None
            update_entity(scope_a, "products", pid, {"name": "Coffee 2"})

        remote.on_push = edit_during_push
        scheduler.advance(2)

        assert engine.last_result.kept_pending == 1
        assert db.session.get(Product, pid).sync_status == "pending"
        # The write during the flush queued another cycle
        assert engine.state == DEBOUNCING

        scheduler.advance(2)

        assert len(remote.requests) == 2
        assert remote.payloads[1]["changes"]["products"][0]["name"] == "Coffee 2"
        assert db.session.get(Product, pid).sync_status == "synced"


class TestFailures:
    def test_http_error_keeps_everything_pending(self, app, engine, scheduler, remote, scope_a, make_product):
        remote.fail_status = 500
        pid = make_product(scope_a)
        scheduler.advance(2)

        assert engine.last_result.outcome == "failed"
        assert db.session.get(Product, pid).sync_status == "pending"
        assert engine.state == IDLE

    def test_network_error_is_swallowed(self, app, engine, scheduler, remote, scope_a, make_product):
        remote.offline = True
        pid = make_product(scope_a)

        scheduler.advance(2)

        assert engine.last_result.outcome == "failed"
        assert "network unreachable" in engine.last_result.error
        assert db.session.get(Product, pid).sync_status == "pending"

    def test_failed_flush_retries_after_interval(self, app, engine, scheduler, remote, scope_a, make_product):
        remote.fail_status = 503
        pid = make_product(scope_a)
        scheduler.advance(2)
        assert len(remote.requests) == 1

        remote.fail_status = None
        scheduler.advance(60)
        assert engine.state == DEBOUNCING
        scheduler.advance(2)

        assert len(remote.requests) == 2
        assert db.session.get(Product, pid).sync_status == "synced"

    def test_next_mutation_resends_unacknowledged_records(self, app, scheduler, remote, scope_a, make_product):
        remote.fail_status = 503
        first = make_product(scope_a, name="Coffee")
        scheduler.advance(2)

        remote.fail_status = None
        make_product(scope_a, name="Tea")
        scheduler.advance(2)

        pushed = sorted(p["name"] for p in remote.payloads[-1]["changes"]["products"])
        assert pushed == ["Coffee", "Tea"]
        assert db.session.get(Product, first).sync_status == "synced"


class TestStatusAndDisabledEngine:
    def test_status_reports_pending_counts(self, app, engine, scope_a, make_product):
        make_product(scope_a)
        create_entity(scope_a, "expenses", {"description": "Rent", "amount": 100, "category": "rent"})

        status = engine.status()

        assert status["enabled"] is True
        assert status["pending"]["products"] == 1
        assert status["pending"]["expenses"] == 1
        assert set(status["pending"]) == set(SYNCED_MODELS)

    def test_engine_without_endpoint_is_inert(self, app, scope_a, make_product):
        scheduler = ManualScheduler()
        engine = SyncEngine(app, get_session_provider(), RemoteClient(""), scheduler=scheduler)
        make_product(scope_a)

        engine.signal()
        assert scheduler.pending == []
        assert engine.flush().outcome == "disabled"
