"""Unit tests for the pending order store and abandonment sweep."""

from datetime import timedelta

from conftest import FIXED_NOW, FakeClock, build_order
from paycore.services.order_store import OrderStore


class TestOrderStore:
    def test_put_get_delete(self, order_store: OrderStore) -> None:
        order = build_order()

        order_store.put(order)

        assert order_store.contains(order.order_id)
        assert order_store.get(order.order_id) == order
        assert order_store.delete(order.order_id) == order
        assert order_store.get(order.order_id) is None
        assert len(order_store) == 0

    def test_delete_missing_is_noop(self, order_store: OrderStore) -> None:
        assert order_store.delete("ORD-missing") is None
        assert order_store.delete(None) is None

    def test_get_without_id(self, order_store: OrderStore) -> None:
        order_store.put(build_order())

        assert order_store.get(None) is None
        assert order_store.get("") is None


class TestSweepExpired:
    def test_removes_only_orders_older_than_timeout(
        self, order_store: OrderStore, clock: FakeClock
    ) -> None:
        order_store.put(build_order("ORD-old", created_at=FIXED_NOW - timedelta(minutes=31)))
        order_store.put(build_order("ORD-edge", created_at=FIXED_NOW - timedelta(minutes=30)))
        order_store.put(build_order("ORD-new", created_at=FIXED_NOW - timedelta(minutes=2)))

        result = order_store.sweep_expired()

        assert result.cleaned == 1
        assert result.remaining == 2
        assert [o.order_id for o in result.cleaned_orders] == ["ORD-old"]
        assert result.cleaned_orders[0].age_minutes == 31
        assert not order_store.contains("ORD-old")

    def test_orders_without_timestamp_are_removed(self, order_store: OrderStore) -> None:
        order_store.put(build_order("ORD-undated", created_at=None))

        result = order_store.sweep_expired()

        assert result.cleaned == 1
        assert result.cleaned_orders[0].age_minutes is None
        assert len(order_store) == 0

    def test_sweep_follows_the_clock(self, order_store: OrderStore, clock: FakeClock) -> None:
        order_store.put(build_order())

        assert order_store.sweep_expired().cleaned == 0
        clock.advance(minutes=30, seconds=1)
        assert order_store.sweep_expired().cleaned == 1

    def test_custom_timeout(self, clock: FakeClock) -> None:
        store = OrderStore(timeout=timedelta(minutes=5), clock=clock)
        store.put(build_order())
        clock.advance(minutes=6)

        assert store.sweep_expired().cleaned == 1


class TestOrderStats:
    def test_counts_by_service_and_age(self, order_store: OrderStore) -> None:
        order_store.put(build_order("ORD-a", created_at=FIXED_NOW - timedelta(minutes=1)))
        order_store.put(build_order("ORD-b", created_at=FIXED_NOW - timedelta(minutes=10)))
        order_store.put(
            build_order(
                "ORD-c",
                service_id="rasi-chatbot",
                created_at=FIXED_NOW - timedelta(minutes=20),
            )
        )
        order_store.put(build_order("ORD-d", created_at=FIXED_NOW - timedelta(minutes=45)))

        stats = order_store.stats()

        assert stats.total == 4
        assert stats.by_service == {"rasi-autocitas": 3, "rasi-chatbot": 1}
        assert stats.by_age == {"<5min": 1, "5-15min": 1, "15-30min": 1, ">30min": 1}
        assert stats.oldest["order_id"] == "ORD-d"
        assert stats.newest["order_id"] == "ORD-a"

    def test_empty_store(self, order_store: OrderStore) -> None:
        stats = order_store.stats()

        assert stats.total == 0
        assert stats.oldest is None
        assert stats.newest is None
