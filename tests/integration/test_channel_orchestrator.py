"""
Channel 상태 머신 / 전체 동기화 / 워터마크 / 동시 실행 방지 테스트.
"""

from datetime import datetime, timezone

import pytest

from conftest import MYNTRA_BASE, reply
from inventory_sync.channels import Channel, ChannelState, as_utc, build_channel
from inventory_sync.errors import ChannelStateError
from inventory_sync.sync.locks import is_locked, sync_lock

STARTED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def channel(test_session, myntra_marketplace, client_options):
    built = build_channel(test_session, myntra_marketplace, **client_options)
    return Channel(test_session, myntra_marketplace, built.handler, built.config, clock=lambda: STARTED_AT)


@pytest.fixture
def healthy_api(fake_api):
    fake_api.on("GET", f"{MYNTRA_BASE}/health", reply(200, {"status": "ok"}))
    fake_api.on("GET", f"{MYNTRA_BASE}/products", reply(200, {"products": [{"sku": "MYN-1", "name": "Kurta", "price": 799}]}))
    fake_api.on("GET", f"{MYNTRA_BASE}/orders", reply(200, {"orders": [{"orderNumber": "O-1", "total": 799, "items": []}]}))
    fake_api.on("GET", f"{MYNTRA_BASE}/inventory", reply(200, {"inventory": [{"sku": "MYN-1", "quantity": 12}]}))
    return fake_api


@pytest.mark.integration
class TestChannelLifecycle:

    def test_starts_uninitialized_and_initializes(self, channel, healthy_api):
        assert channel.state is ChannelState.UNINITIALIZED

        result = channel.initialize()

        assert result.success is True
        assert channel.state is ChannelState.READY
        assert channel.is_ready

    def test_initialize_twice_reuses_health(self, channel, healthy_api):
        channel.initialize()
        channel.initialize()

        assert healthy_api.count("GET", f"{MYNTRA_BASE}/health") == 1

    def test_failed_health_marks_error(self, channel, fake_api, myntra_marketplace):
        result = channel.initialize()

        assert result.success is False
        assert result.message.startswith("Myntra API health check failed:")
        assert channel.state is ChannelState.ERROR
        assert myntra_marketplace.status == "error"

    def test_recovery_sets_marketplace_active(self, channel, fake_api, myntra_marketplace):
        channel.initialize()
        fake_api.on("GET", f"{MYNTRA_BASE}/health", reply(200, {"status": "ok"}))

        result = channel.health_check()

        assert result.success is True
        assert channel.state is ChannelState.READY
        assert myntra_marketplace.status == "active"

    def test_closed_channel_rejects_work(self, channel, healthy_api):
        channel.close()

        with pytest.raises(ChannelStateError):
            channel.sync()
        with pytest.raises(ChannelStateError):
            channel.initialize()

    def test_get_product_missing_returns_none(self, channel, healthy_api):
        assert channel.get_product("NOPE") is None

    def test_get_product_on_unhealthy_channel(self, channel, fake_api):
        with pytest.raises(ChannelStateError):
            channel.get_product("MYN-1")


@pytest.mark.integration
class TestFullSync:

    def test_sync_initializes_then_runs_all_categories(self, channel, healthy_api):
        result = channel.sync()

        assert result.success is True
        assert result.synced_count == 3
        assert result.message == "Successfully synced 3 items from Myntra"
        assert [d.category for d in result.details] == ["products", "orders", "inventory"]
        assert channel.state is ChannelState.READY

    def test_clean_run_advances_watermark(self, channel, healthy_api, myntra_marketplace):
        channel.sync()

        assert as_utc(myntra_marketplace.last_sync) == STARTED_AT

    def test_next_run_uses_watermark(self, channel, healthy_api):
        channel.sync()
        channel.sync()

        order_calls = [c for c in healthy_api.calls if c.url.path == f"{MYNTRA_BASE}/orders"]
        assert "createdAfter" not in order_calls[0].url.params
        assert order_calls[1].url.params["createdAfter"] == STARTED_AT.isoformat()

    def test_failed_category_holds_watermark(self, channel, healthy_api, myntra_marketplace):
        healthy_api.on("GET", f"{MYNTRA_BASE}/orders", reply(500, {"error": "down"}))

        result = channel.sync()

        assert result.success is False
        assert result.message == "Sync completed with errors. 2 items synced, 1 errors"
        assert myntra_marketplace.last_sync is None

    def test_unhealthy_channel_does_not_sync(self, channel, fake_api, myntra_marketplace):
        result = channel.sync()

        assert result.success is False
        assert fake_api.count("GET", f"{MYNTRA_BASE}/orders") == 0
        assert myntra_marketplace.last_sync is None

    def test_single_category_sync(self, channel, healthy_api):
        result = channel.sync_products()

        assert result.category == "products"
        assert healthy_api.count("GET", f"{MYNTRA_BASE}/orders") == 0

    def test_unknown_category(self, channel):
        with pytest.raises(ValueError):
            channel.sync_category("reviews")


@pytest.mark.integration
class TestToggles:

    def test_disabled_category_is_skipped(self, channel, healthy_api):
        config = channel.update_config(sync_orders=False)

        result = channel.sync()

        assert config.sync_orders is False
        assert channel.enabled_categories() == ["products", "inventory"]
        assert [d.category for d in result.details] == ["products", "inventory"]
        assert healthy_api.count("GET", f"{MYNTRA_BASE}/orders") == 0

    def test_all_disabled(self, channel, healthy_api):
        channel.update_config(sync_products=False, sync_orders=False, sync_inventory=False)

        result = channel.sync()

        assert result.success is True
        assert result.message == "No sync categories enabled for Myntra"
        assert healthy_api.calls == []

    def test_toggle_from_marketplace_settings(self, test_session, myntra_marketplace, client_options):
        myntra_marketplace.settings = {**myntra_marketplace.settings, "syncInventory": False}
        test_session.commit()

        channel = build_channel(test_session, myntra_marketplace, **client_options)

        assert channel.enabled_categories() == ["products", "orders"]


@pytest.mark.integration
class TestSyncLock:

    def test_concurrent_sync_is_rejected(self, channel, healthy_api, test_session, myntra_marketplace):
        with sync_lock(test_session, myntra_marketplace.id):
            assert is_locked(myntra_marketplace.id)
            result = channel.sync()

        assert result.success is False
        assert result.error_code == "SYNC_IN_PROGRESS"
        assert healthy_api.calls == []
        assert not is_locked(myntra_marketplace.id)

    def test_lock_released_after_run(self, channel, healthy_api, myntra_marketplace):
        channel.sync()

        assert not is_locked(myntra_marketplace.id)
        assert channel.sync().success is True
