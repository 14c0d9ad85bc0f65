"""
End-to-end flows through the HTTP API with the authenticated user swapped
per request.
"""
from models.table_management import TableStatus
from utils.csv_export import UTF8_BOM

ORDERS = "/api/v1/orders"
TABLES = "/api/v1/table-management/tables"


def create_order(client, location, tables, items):
    response = client.post(ORDERS, json={
        "location_id": location.id,
        "order_type": "dine_in",
        "table_ids": [t.id for t in tables],
        "items": items,
    })
    assert response.status_code == 201, response.text
    return response.json()


class TestOrderFlow:
    def test_create_transfer_settle(self, client, login_as, location, staff, manager, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:2], items)
        assert order["status"] == "ongoing"
        assert order["table_names"] == ["Table 1", "Table 2"]
        assert order["total_amount"] == 315

        response = client.post(f"{ORDERS}/{order['id']}/transfer", json={
            "customer": {"name": "Asha", "phone": "9800000000", "city": "Pune"},
            "payment_method": "upi",
        })
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "transferred"

        # staff can no longer edit
        response = client.put(f"{ORDERS}/{order['id']}/items", json={"items": items})
        assert response.status_code == 400

        login_as(manager)
        pending = client.get(f"{ORDERS}/pending").json()
        assert [entry["order_id"] for entry in pending] == [order["id"]]

        response = client.post(f"{ORDERS}/{order['id']}/settle", json={})
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["order"]["status"] == "settled"
        assert body["order"]["payment_method"] == "upi"
        assert body["released_table_ids"] == [tables[0].id, tables[1].id]
        assert body["failed_tables"] == []

        statuses = {t["id"]: t["status"] for t in client.get(TABLES, params={"location_id": location.id}).json()}
        assert statuses[tables[0].id] == "available"
        assert statuses[tables[1].id] == "available"
        assert client.get(f"{ORDERS}/pending").json() == []

        actions = [entry["action"] for entry in client.get(f"{ORDERS}/{order['id']}/history").json()]
        assert actions == ["created", "transferred", "settled"]

    def test_staff_cannot_settle(self, client, login_as, location, staff, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)
        client.post(f"{ORDERS}/{order['id']}/transfer", json={})

        response = client.post(f"{ORDERS}/{order['id']}/settle", json={})
        assert response.status_code == 403

    def test_repeated_transfer_rejected(self, client, login_as, location, staff, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)
        assert client.post(f"{ORDERS}/{order['id']}/transfer", json={}).status_code == 200

        response = client.post(f"{ORDERS}/{order['id']}/transfer", json={})
        assert response.status_code == 400
        assert "transferred" in response.json()["detail"]

    def test_repeated_settle_rejected(self, client, login_as, location, staff, manager, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)
        client.post(f"{ORDERS}/{order['id']}/transfer", json={})

        login_as(manager)
        response = client.post(f"{ORDERS}/{order['id']}/settle", json={"payment_method": "upi"})
        assert response.status_code == 200, response.text

        response = client.post(f"{ORDERS}/{order['id']}/settle", json={"payment_method": "cash"})
        assert response.status_code == 400
        assert client.get(f"{ORDERS}/{order['id']}").json()["payment_method"] == "upi"

    def test_stale_version_conflicts(self, client, login_as, location, staff, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)

        response = client.put(f"{ORDERS}/{order['id']}/items", params={"version": order["version_id"] + 5},
                              json={"items": items})
        assert response.status_code == 409

        response = client.put(f"{ORDERS}/{order['id']}/items", params={"version": order["version_id"]},
                              json={"items": items[:1]})
        assert response.status_code == 200
        assert response.json()["version_id"] > order["version_id"]

    def test_get_order_reflects_latest_commit(self, client, login_as, location, staff, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)
        assert client.get(f"{ORDERS}/{order['id']}").json()["subtotal"] == 300

        client.put(f"{ORDERS}/{order['id']}/items", json={"items": items[:1]})
        assert client.get(f"{ORDERS}/{order['id']}").json()["subtotal"] == 200

    def test_other_location_cannot_see_order(self, client, login_as, location, staff, outsider, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)

        login_as(outsider)
        assert client.get(f"{ORDERS}/{order['id']}").status_code == 404
        assert client.post(f"{ORDERS}/{order['id']}/cancel", json={}).status_code == 404

    def test_staff_cannot_cancel_transferred(self, client, login_as, location, staff, manager, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)
        client.post(f"{ORDERS}/{order['id']}/transfer", json={})

        assert client.post(f"{ORDERS}/{order['id']}/cancel", json={}).status_code == 400

        login_as(manager)
        response = client.delete(f"{ORDERS}/{order['id']}")
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "cancelled"
        assert response.json()["released_table_ids"] == [tables[0].id]

    def test_dine_in_without_tables_rejected(self, client, login_as, location, staff, items):
        login_as(staff)
        response = client.post(ORDERS, json={"location_id": location.id, "order_type": "dine_in", "items": items})
        assert response.status_code == 422

    def test_receipt_pdf(self, client, login_as, location, staff, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)

        response = client.get(f"{ORDERS}/{order['id']}/receipt")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")


class TestCouponsApi:
    def test_dish_coupon_duplicates(self, client, login_as, location, manager):
        login_as(manager)
        payload = {"location_id": location.id, "dish_name": "Chilli Chicken", "percentages": [8]}
        assert client.post("/api/v1/coupons/dish", json=payload).status_code == 201

        payload["percentages"] = [8, 10]
        response = client.post("/api/v1/coupons/dish", json=payload)
        assert response.status_code == 201
        body = response.json()
        assert [c["coupon_code"] for c in body["created"]] == ["CHILLICHICKEN10"]
        assert body["skipped_percentages"] == [8]
        assert body["skipped_count"] == 1

        response = client.post("/api/v1/coupons/dish", json=payload)
        assert response.status_code == 409

    def test_apply_dish_coupon_to_order(self, client, login_as, location, staff, manager, tables):
        login_as(manager)
        created = client.post("/api/v1/coupons/dish", json={
            "location_id": location.id, "dish_name": "Chilli Chicken", "percentages": [8, 10],
        }).json()["created_ids"]

        naan = client.post("/api/v1/coupons/dish", json={
            "location_id": location.id, "dish_name": "Butter Naan", "percentages": [5],
        }).json()["created_ids"]

        login_as(staff)
        order = create_order(client, location, tables[:1], [
            {"name": "Chilli Chicken", "price": 169, "quantity": 1},
            {"name": "Butter Naan", "price": 60, "quantity": 2},
        ])

        response = client.post(f"{ORDERS}/{order['id']}/coupons/validate", json={"dish_coupon_ids": created})
        assert response.json()["is_valid"] is False

        response = client.post(f"{ORDERS}/{order['id']}/coupons", json={"dish_coupon_ids": created[:1]})
        assert response.status_code == 200, response.text
        assert response.json()["coupon_discount"] == 13

        applicable = client.get(f"/api/v1/coupons/dish/applicable/{order['id']}").json()
        assert [c["id"] for c in applicable] == naan

    def test_regular_coupon_capped(self, client, login_as, location, staff, manager, tables, items):
        login_as(manager)
        response = client.post("/api/v1/coupons", json={
            "location_id": location.id, "name": "TEN", "type": "percentage", "value": 10, "max_discount_amount": 20,
        })
        assert response.status_code == 201, response.text
        coupon_id = response.json()["id"]

        login_as(staff)
        order = create_order(client, location, tables[:1], items)
        response = client.post(f"{ORDERS}/{order['id']}/coupons", json={"coupon_id": coupon_id})
        assert response.json()["coupon_discount"] == 20
        assert response.json()["total_amount"] == 295


class TestTablesApi:
    def test_reserve_and_release(self, client, login_as, location, staff, tables):
        login_as(staff)
        response = client.post(f"{TABLES}/{tables[0].id}/reserve", json={"customer_name": "Asha"})
        assert response.status_code == 200
        assert response.json()["status"] == "reserved"
        assert response.json()["reservation_expiry_at"] is not None

        assert client.post(f"{TABLES}/{tables[0].id}/reserve", json={}).status_code == 400

        response = client.post(f"{TABLES}/{tables[0].id}/release")
        assert response.json()["status"] == "available"
        assert response.json()["reservation_customer_name"] is None

    def test_release_refused_while_order_active(self, client, login_as, location, staff, tables, items):
        login_as(staff)
        create_order(client, location, tables[:1], items)
        assert client.post(f"{TABLES}/{tables[0].id}/release").status_code == 400

    def test_switch_moves_order(self, client, login_as, location, staff, manager, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)

        login_as(manager)
        response = client.post(f"{TABLES}/switch", json={"from_table_id": tables[0].id, "to_table_id": tables[2].id})
        assert response.status_code == 200, response.text
        assert response.json()["current_order_id"] == order["id"]

        moved = client.get(f"{ORDERS}/{order['id']}").json()
        assert moved["table_ids"] == [tables[2].id]
        assert client.get(f"{TABLES}/{tables[0].id}").json()["status"] == TableStatus.AVAILABLE.value

    def test_merge_then_split(self, client, login_as, location, manager, tables):
        login_as(manager)
        response = client.post(f"{TABLES}/merge", json={"table_ids": [tables[0].id, tables[1].id]})
        assert response.status_code == 200
        groups = {t["merge_group"] for t in response.json()}
        assert len(groups) == 1 and None not in groups

        response = client.post(f"{TABLES}/split", json={"table_ids": [tables[1].id]})
        assert response.json() == {"succeeded": [tables[0].id, tables[1].id], "failed": []}


class TestCustomerDataApi:
    def test_export_csv(self, client, login_as, location, staff, manager, tables, items):
        login_as(staff)
        order = create_order(client, location, tables[:1], items)
        client.post(f"{ORDERS}/{order['id']}/transfer", json={
            "customer": {"name": "Asha", "phone": "9800000000", "city": "Pune"},
        })

        login_as(manager)
        response = client.get("/api/v1/customer-data/export", params={"start_date": "2024-01-01"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "userbase_2024-01-01_to_" in response.headers["content-disposition"]
        text = response.content.decode("utf-8")
        assert text.startswith(UTF8_BOM)
        assert '"Asha","9800000000","Pune"' in text

    def test_export_without_records(self, client, login_as, location, manager):
        login_as(manager)
        assert client.get("/api/v1/customer-data/export").status_code == 404

    def test_staff_cannot_export(self, client, login_as, location, staff):
        login_as(staff)
        assert client.get("/api/v1/customer-data/export").status_code == 403


class TestLocationsApi:
    def test_owner_builds_location(self, client, login_as, owner):
        login_as(owner)
        franchise = client.post("/api/v1/franchises", json={"name": "Curry Corner"})
        assert franchise.status_code == 201
        assert client.post("/api/v1/franchises", json={"name": "Curry Corner"}).status_code == 409

        response = client.post("/api/v1/locations", json={
            "franchise_id": franchise.json()["id"], "name": "Curry Corner FC Road", "cgst_rate": 2.5, "sgst_rate": 2.5,
        })
        assert response.status_code == 201
        assert response.json()["service_charge_rate"] == 0

        names = [loc["name"] for loc in client.get("/api/v1/locations").json()]
        assert "Curry Corner FC Road" in names

    def test_service_charge_applies_to_new_totals(self, client, login_as, location, staff, manager, tables, items):
        login_as(manager)
        response = client.put(f"/api/v1/locations/{location.id}/settings", json={"service_charge_rate": 10})
        assert response.status_code == 200

        login_as(staff)
        order = create_order(client, location, tables[:1], items)
        assert order["service_charge"] == 30
        assert order["original_total"] == 345
        assert order["total_amount"] == 345

    def test_staff_cannot_change_settings(self, client, login_as, location, staff):
        login_as(staff)
        response = client.put(f"/api/v1/locations/{location.id}/settings", json={"cgst_rate": 9})
        assert response.status_code == 403
