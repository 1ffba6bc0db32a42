from __future__ import annotations

import logging

import pytest

from termlink.common.logger import PipelineLogger


def test_records_carry_component_and_merged_extra(caplog: pytest.LogCaptureFixture) -> None:
    logger = PipelineLogger.get_logger("unit", "logger_test")
    caplog.set_level(logging.DEBUG, logger="termlink.logger_test.unit")

    logger.info("hello", extra={"attempt": 2})

    record = caplog.records[-1]
    assert record.name == "termlink.logger_test.unit"
    assert record.getMessage() == "hello"
    assert record.component == "logger_test"
    assert record.attempt == 2
    assert record.session == ""


def test_bind_adds_session_without_touching_parent(caplog: pytest.LogCaptureFixture) -> None:
    parent = PipelineLogger.get_logger("bound", "logger_test")
    caplog.set_level(logging.DEBUG, logger="termlink.logger_test.bound")

    child = parent.bind(session_id="s1")
    child.warning("child")
    parent.warning("parent")

    child_record, parent_record = caplog.records[-2:]
    assert child_record.session_id == "s1"
    assert child_record.session == "(s1) "
    assert parent_record.session == ""
    assert parent.context == {}


def test_reserved_extra_keys_are_prefixed(caplog: pytest.LogCaptureFixture) -> None:
    logger = PipelineLogger.get_logger("reserved", "logger_test")
    caplog.set_level(logging.DEBUG, logger="termlink.logger_test.reserved")

    logger.error("boom", extra={"name": "shadow", "module": "m"})

    record = caplog.records[-1]
    assert record.name == "termlink.logger_test.reserved"
    assert record.ctx_name == "shadow"
    assert record.ctx_module == "m"


def test_disabled_level_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    logger = PipelineLogger.get_logger("quiet", "logger_test", level=logging.WARNING)
    caplog.set_level(logging.WARNING, logger="termlink.logger_test.quiet")

    logger.debug("dropped")
    logger.warning("kept")

    messages = [r.getMessage() for r in caplog.records if r.name == "termlink.logger_test.quiet"]
    assert messages == ["kept"]
