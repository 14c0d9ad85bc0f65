"""
Table occupancy: reservations and their expiry, switching, merging,
splitting and batch release.
"""
from datetime import datetime, timedelta

import pytest

from models.table_management import TableStatus
from services import table_occupancy
from services.errors import TableStateError
from utils.config import RESERVATION_HOLD_MINUTES


class TestReservations:
    def test_reserve_sets_expiry(self, db_session, tables, staff):
        now = datetime(2024, 5, 1, 19, 0)
        table = table_occupancy.reserve_table(tables[0], staff.id, "Asha", "9800000000", now=now)

        assert table.status == TableStatus.RESERVED
        assert table.reserved_by_id == staff.id
        assert table.reservation_expiry_at == now + timedelta(minutes=RESERVATION_HOLD_MINUTES)

    def test_cannot_reserve_occupied_table(self, db_session, tables, staff):
        tables[0].status = TableStatus.OCCUPIED
        with pytest.raises(TableStateError):
            table_occupancy.reserve_table(tables[0], staff.id)

    def test_expired_reservation_released(self, db_session, tables, staff):
        now = datetime(2024, 5, 1, 19, 0)
        table_occupancy.reserve_table(tables[0], staff.id, "Asha", "9800000000", notes="window", now=now)
        table_occupancy.reserve_table(tables[1], staff.id, now=now + timedelta(minutes=RESERVATION_HOLD_MINUTES))
        db_session.commit()

        expired = table_occupancy.release_expired_reservations(
            db_session, now=now + timedelta(minutes=RESERVATION_HOLD_MINUTES + 1)
        )
        db_session.commit()

        assert [t.id for t in expired] == [tables[0].id]
        released = tables[0]
        assert released.status == TableStatus.AVAILABLE
        assert released.reserved_by_id is None
        assert released.reserved_at is None
        assert released.reservation_expiry_at is None
        assert released.reservation_customer_name is None
        assert released.reservation_customer_phone is None
        assert released.reservation_notes is None
        assert tables[1].status == TableStatus.RESERVED

    def test_occupying_reserved_table_clears_reservation(self, db_session, tables, staff):
        table_occupancy.reserve_table(tables[0], staff.id, "Asha")
        table_occupancy.occupy_table(tables[0], order_id=42)

        assert tables[0].status == TableStatus.OCCUPIED
        assert tables[0].current_order_id == 42
        assert tables[0].reservation_customer_name is None

    def test_maintenance_table_cannot_be_occupied(self, tables):
        tables[0].status = TableStatus.MAINTENANCE
        with pytest.raises(TableStateError):
            table_occupancy.occupy_table(tables[0], order_id=1)


class TestBatchRelease:
    def test_release_reports_failures(self, db_session, tables):
        tables[0].status = TableStatus.OCCUPIED
        tables[0].current_order_id = None
        tables[1].status = TableStatus.MAINTENANCE
        db_session.commit()

        result = table_occupancy.release_tables(db_session, [tables[0].id, tables[1].id, 9999])

        assert result.succeeded == [tables[0].id]
        assert [f["table_id"] for f in result.failed] == [tables[1].id, 9999]
        assert not result.ok
        assert tables[0].status == TableStatus.AVAILABLE


class TestSwitchMergeSplit:
    def test_switch_requires_seated_order(self, db_session, tables):
        tables[0].status = TableStatus.OCCUPIED
        db_session.commit()
        with pytest.raises(TableStateError):
            table_occupancy.switch_table(db_session, tables[0], tables[1])

    def test_switch_to_merged_table(self, db_session, tables):
        table_occupancy.merge_tables(db_session, [tables[1], tables[2]])
        table_occupancy.occupy_table(tables[0], order_id=7)
        with pytest.raises(TableStateError):
            table_occupancy.switch_table(db_session, tables[0], tables[1])

    def test_switch_to_same_table(self, db_session, tables):
        with pytest.raises(TableStateError):
            table_occupancy.switch_table(db_session, tables[0], tables[0])

    def test_merge_and_split(self, db_session, tables):
        merged = table_occupancy.merge_tables(db_session, [tables[0], tables[1]])
        db_session.commit()

        primary, member = merged
        assert primary.merge_group == member.merge_group
        assert primary.is_primary
        assert member.merged_into_id == primary.id
        assert [t.id for t in table_occupancy.merge_group_members(db_session, member)] == [tables[0].id, tables[1].id]

        result = table_occupancy.split_tables(db_session, merged)
        db_session.commit()
        assert result.succeeded == [tables[0].id, tables[1].id]
        assert tables[0].merge_group is None
        assert tables[1].merged_into_id is None

    def test_merge_needs_two_available_tables(self, db_session, tables):
        with pytest.raises(TableStateError):
            table_occupancy.merge_tables(db_session, [tables[0]])

        tables[1].status = TableStatus.RESERVED
        with pytest.raises(TableStateError):
            table_occupancy.merge_tables(db_session, [tables[0], tables[1]])

    def test_split_refuses_occupied_member(self, db_session, tables):
        table_occupancy.merge_tables(db_session, [tables[0], tables[1]])
        tables[1].status = TableStatus.OCCUPIED
        db_session.commit()

        result = table_occupancy.split_tables(db_session, [tables[0], tables[1], tables[2]])
        assert result.succeeded == [tables[0].id]
        assert [f["table_id"] for f in result.failed] == [tables[1].id, tables[2].id]

    def test_sort_tables_by_status_then_name(self, tables):
        tables[0].status = TableStatus.OCCUPIED
        tables[2].status = TableStatus.RESERVED
        ordered = table_occupancy.sort_tables(tables)
        assert [t.name for t in ordered] == ["2", "4", "3", "1"]
