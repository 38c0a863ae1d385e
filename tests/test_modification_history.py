"""Tests for the per-variant modification history."""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from core.errors import ValidationError
from core.modification_history import get_product_modification_history, group_modifications_by_date
from core.models import LogData, LogEntry, Product, ProductVariant
from utils.config_loader import AppConfig


def log(timestamp, rettifica, variant="M", request_type="Rettifica"):
    return LogEntry(
        request_type=request_type,
        timestamp=timestamp,
        data=LogData("101", variant, "Mogliano", "501", "Giacca", "99.00", rettifica, [])
    )


class TestGroupModificationsByDate:
    """Tests for group_modifications_by_date."""

    def test_groups_newest_day_first(self):
        groups = group_modifications_by_date([
            log("2024-05-01T08:00:00+00:00", -1),
            log("2024-05-03T09:00:00+00:00", -1),
            log("2024-05-01T18:00:00+00:00", 1, request_type="Annullamento"),
            log("2024-05-03T10:00:00+00:00", -1, request_type="Trasferimento"),
        ])

        assert [g.date for g in groups] == ["2024-05-03", "2024-05-01"]
        assert [g.app_net_change for g in groups] == [-2, 0]
        assert [d.reason for d in groups[1].app_details] == ["Rettifica", "Annullamento"]
        assert all(d.source == "app" for g in groups for d in g.app_details)

    def test_empty(self):
        assert group_modifications_by_date([]) == []


class TestProductHistory:
    """Tests for get_product_modification_history."""

    @pytest.fixture
    def config(self):
        return AppConfig(
            shop_domain="shop.myshopify.com",
            access_token="token",
            primary_location="111",
            secondary_location="222"
        )

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.get_product.return_value = Product(
            id="101", title="Giacca", handle="giacca", price="99.00", description="",
            variants=[
                ProductVariant("1", "501", "M", 3, "99.00"),
                ProductVariant("2", "502", "L", 0, "99.00"),
            ]
        )
        client.get_inventory_levels.return_value = {
            "501": {"111": 1, "222": 2},
            "502": {"111": 0},
        }
        return client

    def test_history_for_selected_location(self, client, config):
        firestore = MagicMock()
        firestore.get_logs_by_product_id.return_value = [
            log("2024-05-03T09:00:00+00:00", -1),
            log("2024-05-02T09:00:00+00:00", 1, request_type="Trasferimento"),
        ]
        now = datetime(2024, 5, 4, 12, 0, tzinfo=timezone.utc)

        history = get_product_modification_history(client, firestore, config, "101", "Mogliano", 7, now=now)

        firestore.get_logs_by_product_id.assert_called_once_with(
            "101", "Mogliano", "2024-04-27T12:00:00+00:00", "2024-05-04T12:00:00+00:00"
        )
        assert history.location == "Mogliano"
        assert history.date_range.days_back == 7

        medium, large = history.variants
        assert (medium.variant_title, medium.current_quantity, medium.app_net_change) == ("M", 2, 0)
        assert [d.date for d in medium.daily_modifications] == ["2024-05-03", "2024-05-02"]
        assert (large.current_quantity, large.app_net_change, large.daily_modifications) == (0, 0, [])

    def test_unknown_location(self, client, config):
        with pytest.raises(ValidationError):
            get_product_modification_history(client, MagicMock(), config, "101", "Venezia", 7)
