from __future__ import annotations

import io
import logging
from decimal import Decimal

import pytest

from budget_engine.core import logging_setup
from budget_engine.core.errors import InvalidAmountError
from budget_engine.utils import round_money, to_money


def test_to_money_keeps_precision():
    assert to_money("12.345") == Decimal("12.345")
    assert to_money(0.1) == Decimal("0.1")
    assert to_money(7) == Decimal("7")


@pytest.mark.parametrize("bad", [None, False, "", "1,000", "-Infinity"])
def test_to_money_rejects_malformed(bad):
    with pytest.raises(InvalidAmountError):
        to_money(bad)


def test_round_money_half_up():
    assert round_money("2.675") == Decimal("2.68")
    assert round_money("-2.675") == Decimal("-2.68")
    assert round_money(Decimal("0.004")) == Decimal("0.00")


def test_get_logger_is_namespaced():
    assert logging_setup.get_logger("services.x").name == "budget_engine.services.x"
    assert logging_setup.get_logger("budget_engine.store").name == "budget_engine.store"
    assert logging_setup.get_logger().name == "budget_engine"


def test_parse_level():
    assert logging_setup._parse_level("debug") == logging.DEBUG
    assert logging_setup._parse_level("30") == 30
    assert logging_setup._parse_level(logging.ERROR) == logging.ERROR
    assert logging_setup._parse_level("nonsense") == logging.INFO


def test_package_logs_reach_caplog(caplog):
    logger = logging_setup.get_logger("tests")
    with caplog.at_level(logging.INFO, logger="budget_engine"):
        logger.info("hello %s", "world")
    assert "hello world" in caplog.text


def test_configure_logging_attaches_one_handler(monkeypatch):
    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    root = logging.getLogger("budget_engine")
    saved = list(root.handlers)
    stream = io.StringIO()
    try:
        logging_setup.configure_logging("INFO", stream=stream, fmt="%(levelname)s %(message)s")
        logging_setup.configure_logging("INFO", stream=stream)
        logging_setup.get_logger("tests").info("configured")
        added = [h for h in root.handlers if h not in saved]
        assert len(added) == 1
        assert "INFO configured" in stream.getvalue()
    finally:
        root.handlers[:] = saved
