from datetime import timedelta

import pytest

from kreative_clinic.domain.inventory.service import check_low_stock, consume_stock
from kreative_clinic.models_inventory import InventoryBatch, InventoryItem, InventoryMovement
from kreative_clinic.models_notification import EmailLog, Notification
from kreative_clinic.services.inventory_expiry import scan_near_expiry
from kreative_clinic.shared.timeutils import clinic_now, clinic_today


@pytest.fixture
def gloves(db) -> InventoryItem:
    item = InventoryItem(name="Nitrile Gloves", sku_code="GLV-M", unit="box", low_stock_threshold=5)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def add_batch(db):
    def _add(item, qty, expires_in=None, lot=None):
        batch = InventoryBatch(
            item_id=item.id,
            lot_number=lot,
            qty_received=qty,
            qty_on_hand=qty,
            expiry_date=clinic_today() + timedelta(days=expires_in) if expires_in is not None else None,
            received_at=clinic_now(),
        )
        db.add(batch)
        db.commit()
        db.refresh(batch)
        return batch

    return _add


class TestItems:
    """Item catalogue managed by admins"""

    def test_create_item_normalizes_sku(self, client, admin_headers):
        response = client.post(
            "/api/inventory/items",
            json={"name": "Lidocaine 2%", "sku_code": " lido-2 ", "type": "drug", "unit": "cartridge"},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["sku_code"] == "LIDO-2"
        assert response.json()["total_on_hand"] == 0

    def test_duplicate_sku(self, client, admin_headers, gloves):
        response = client.post(
            "/api/inventory/items", json={"name": "Other", "sku_code": "glv-m"}, headers=admin_headers
        )

        assert response.status_code == 422
        assert response.json()["errors"]["sku_code"] == ["The sku code has already been taken."]

    def test_sellable_requires_price(self, client, admin_headers, gloves):
        response = client.put(f"/api/inventory/items/{gloves.id}", json={"is_sellable": True}, headers=admin_headers)

        assert response.status_code == 422
        assert "patient_price" in response.json()["errors"]

    def test_list_reports_stock_level(self, client, staff_headers, gloves, add_batch):
        add_batch(gloves, 3)

        body = client.get("/api/inventory/items", headers=staff_headers).json()

        assert body["total"] == 1
        assert body["data"][0]["total_on_hand"] == 3
        assert body["data"][0]["is_low_stock"] is True

    def test_staff_cannot_create(self, client, staff_headers):
        response = client.post("/api/inventory/items", json={"name": "X", "sku_code": "X"}, headers=staff_headers)

        assert response.status_code == 403


class TestReceive:
    """Stock receipt creates a batch and a movement"""

    def test_admin_receives(self, client, admin_headers, db, gloves):
        response = client.post(
            "/api/inventory/receive",
            json={"item_id": gloves.id, "qty_received": 20, "lot_number": "L-1"},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["message"] == "Stock received."
        assert response.json()["item"]["total_on_hand"] == 20
        movement = db.query(InventoryMovement).one()
        assert movement.type == "receive"
        assert movement.quantity == 20

    def test_staff_blocked_unless_enabled(self, client, staff_headers, admin_headers, gloves):
        payload = {"item_id": gloves.id, "qty_received": 5}

        blocked = client.post("/api/inventory/receive", json=payload, headers=staff_headers)
        assert blocked.status_code == 403
        assert blocked.json()["detail"] == "Staff are not allowed to receive stock."

        client.patch("/api/inventory/settings", json={"staff_can_receive": True}, headers=admin_headers)

        allowed = client.post("/api/inventory/receive", json=payload, headers=staff_headers)
        assert allowed.status_code == 201

    def test_batches_listed_by_expiry(self, client, staff_headers, gloves, add_batch):
        add_batch(gloves, 4, lot="UNDATED")
        add_batch(gloves, 2, expires_in=90, lot="LATE")
        add_batch(gloves, 6, expires_in=10, lot="SOON")

        response = client.get(f"/api/inventory/items/{gloves.id}/batches", headers=staff_headers)

        assert response.status_code == 200
        assert [b["lot_number"] for b in response.json()] == ["SOON", "LATE", "UNDATED"]
        assert response.json()[0]["qty_on_hand"] == 6


class TestConsume:
    """First-expiry-first-out consumption"""

    def test_fefo_order(self, db, gloves, add_batch):
        undated = add_batch(gloves, 10)
        late = add_batch(gloves, 4, expires_in=60)
        early = add_batch(gloves, 4, expires_in=10)

        taken = consume_stock(db, gloves.id, 6, None, "other")
        db.commit()

        assert taken == [{"batch_id": early.id, "quantity": 4}, {"batch_id": late.id, "quantity": 2}]
        db.refresh(undated)
        assert undated.qty_on_hand == 10

    def test_insufficient_stock(self, client, admin_headers, gloves, add_batch):
        add_batch(gloves, 2)

        response = client.post(
            "/api/inventory/consume", json={"item_id": gloves.id, "quantity": 3}, headers=admin_headers
        )

        assert response.status_code == 422
        assert response.json()["detail"]["available"] == 2

    def test_staff_must_reference_finished_visit(
        self, client, staff_headers, gloves, add_batch, patient, make_visit
    ):
        add_batch(gloves, 10)
        pending = make_visit(patient, status="pending")
        finished = make_visit(patient)

        no_ref = client.post(
            "/api/inventory/consume", json={"item_id": gloves.id, "quantity": 1}, headers=staff_headers
        )
        assert no_ref.status_code == 422
        assert "ref_id" in no_ref.json()["errors"]

        pending_ref = client.post(
            "/api/inventory/consume",
            json={"item_id": gloves.id, "quantity": 1, "ref_type": "visit", "ref_id": pending.id},
            headers=staff_headers,
        )
        assert pending_ref.status_code == 422

        ok = client.post(
            "/api/inventory/consume",
            json={"item_id": gloves.id, "quantity": 1, "ref_type": "visit", "ref_id": finished.id},
            headers=staff_headers,
        )
        assert ok.status_code == 200
        assert ok.json()["item"]["total_on_hand"] == 9


class TestAdjust:
    """Write-offs and recounts on a single batch"""

    def test_expired_write_off(self, client, admin_headers, db, gloves, add_batch):
        batch = add_batch(gloves, 20)

        response = client.post(
            "/api/inventory/adjust",
            json={"item_id": gloves.id, "batch_id": batch.id, "quantity": 3, "adjust_reason": "expired"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["qty_on_hand"] == 17
        movement = db.query(InventoryMovement).filter(InventoryMovement.type == "adjust").one()
        assert movement.quantity == 3
        assert movement.adjust_reason == "expired"

    def test_cannot_take_more_than_the_batch_holds(self, client, admin_headers, gloves, add_batch):
        batch = add_batch(gloves, 2)

        response = client.post(
            "/api/inventory/adjust",
            json={"item_id": gloves.id, "batch_id": batch.id, "quantity": 5, "adjust_reason": "theft"},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["errors"]["quantity"] == ["Only 2 box left in this batch."]

    def test_increase_needs_count_correction(self, client, admin_headers, db, gloves, add_batch):
        batch = add_batch(gloves, 2)
        payload = {"item_id": gloves.id, "batch_id": batch.id, "quantity": 4, "direction": "increase"}

        rejected = client.post(
            "/api/inventory/adjust", json={**payload, "adjust_reason": "other"}, headers=admin_headers
        )
        accepted = client.post(
            "/api/inventory/adjust", json={**payload, "adjust_reason": "count_correction"}, headers=admin_headers
        )

        assert rejected.status_code == 422
        assert "adjust_reason" in rejected.json()["errors"]
        assert accepted.json()["qty_on_hand"] == 6

    def test_batch_of_another_item(self, client, admin_headers, db, gloves, add_batch):
        masks = InventoryItem(name="Face Masks", sku_code="MSK-1")
        db.add(masks)
        db.commit()
        batch = add_batch(masks, 10)

        response = client.post(
            "/api/inventory/adjust",
            json={"item_id": gloves.id, "batch_id": batch.id, "quantity": 1, "adjust_reason": "damaged"},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert "batch_id" in response.json()["errors"]

    def test_write_off_triggers_low_stock_alert(self, client, admin_headers, db, gloves, add_batch):
        batch = add_batch(gloves, 8)

        client.post(
            "/api/inventory/adjust",
            json={"item_id": gloves.id, "batch_id": batch.id, "quantity": 4, "adjust_reason": "expired"},
            headers=admin_headers,
        )

        assert db.query(EmailLog).filter(EmailLog.subject == "Low stock: Nitrile Gloves").count() == 1

    def test_staff_forbidden(self, client, staff_headers, gloves, add_batch):
        batch = add_batch(gloves, 8)

        response = client.post(
            "/api/inventory/adjust",
            json={"item_id": gloves.id, "batch_id": batch.id, "quantity": 1, "adjust_reason": "expired"},
            headers=staff_headers,
        )

        assert response.status_code == 403


class TestAlerts:
    """Low-stock and near-expiry notifications"""

    def test_low_stock_alert_is_debounced(self, db, gloves, add_batch):
        add_batch(gloves, 2)

        assert check_low_stock(db, gloves) is True
        assert check_low_stock(db, gloves) is False

        email = db.query(EmailLog).one()
        assert email.subject == "Low stock: Nitrile Gloves"
        assert email.to == "owner@example.com"

        notice = db.query(Notification).one()
        assert notice.scope == "broadcast"
        assert notice.audience_roles == ["admin", "staff"]
        assert notice.severity == "warning"

    def test_no_alert_above_threshold(self, db, gloves, add_batch):
        add_batch(gloves, 50)

        assert check_low_stock(db, gloves) is False

    def test_near_expiry_scan(self, db, gloves, add_batch):
        add_batch(gloves, 3, expires_in=5, lot="SOON")
        add_batch(gloves, 3, expires_in=200, lot="LATER")
        add_batch(gloves, 3, expires_in=-1, lot="EXPIRED")

        summary = scan_near_expiry(db)

        assert summary["batches"] == 1
        assert summary["near_expiry_days"] == 30
        assert db.query(EmailLog).one().subject == "Inventory batches near expiry"

    def test_near_expiry_scan_without_batches(self, db, gloves):
        summary = scan_near_expiry(db)

        assert summary["batches"] == 0
        assert db.query(EmailLog).count() == 0
