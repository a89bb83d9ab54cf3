"""
CLI command tests (flask system / orders / inventory groups).
"""

from datetime import timedelta

import pytest

from kavara.services import order_service
from kavara.time_utils import utcnow


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def _cart(size="M", quantity=1):
    return [{"type": "product", "id": "P1", "size": size, "quantity": quantity}]


class TestInventoryCommands:

    def test_set_overwrites_stock(self, runner, db_session, tee):
        result = runner.invoke(args=["inventory", "set", "product", "P1", "M=5", "L=1", "--note", "Recount"])

        assert result.exit_code == 0, result.output
        assert "PASS Tee" in result.output
        assert tee.inventory == {"M": 5, "L": 1}

    def test_set_rejects_bad_pairs(self, runner, db_session, tee):
        result = runner.invoke(args=["inventory", "set", "product", "P1", "M=lots"])

        assert result.exit_code != 0
        assert tee.inventory == {"M": 2, "L": 0}

    def test_set_unknown_entity(self, runner, db_session):
        result = runner.invoke(args=["inventory", "set", "box", "NOPE", "default=1"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_history(self, runner, db_session, tee, order_payload):
        order_service.create_order(order_payload(cart_items=_cart()))

        result = runner.invoke(args=["inventory", "history", "--entity-id", "P1"])

        assert result.exit_code == 0
        assert "Tee" in result.output
        assert "-1 -> 1" in result.output

    def test_empty_history(self, runner, db_session):
        result = runner.invoke(args=["inventory", "history"])

        assert "No history." in result.output


class TestOrderCommands:

    def test_release_stale(self, runner, db_session, tee, order_payload):
        order = order_service.create_order(order_payload(cart_items=_cart(quantity=2)))
        order.created_at = utcnow() - timedelta(hours=30)
        db_session.commit()

        result = runner.invoke(args=["orders", "release-stale", "--older-than-hours", "24"])

        assert result.exit_code == 0, result.output
        assert f"RELEASED {order.order_number}" in result.output
        assert tee.inventory["M"] == 2

    def test_retry_refund_nothing_to_do(self, runner, db_session, tee, order_payload):
        order = order_service.create_order(order_payload(cart_items=_cart()))
        order_service.cancel_order(order.order_number)

        result = runner.invoke(args=["orders", "retry-refund", order.order_number])

        assert result.exit_code == 0
        assert "SKIP" in result.output

    def test_retry_refund_unknown_order(self, runner, db_session):
        result = runner.invoke(args=["orders", "retry-refund", "KB404"])

        assert result.exit_code == 1
        assert "KB404 not found" in result.output
