"""Unit tests for the task baton and its logger adapter."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

import pytest

from dreadnot.deploy.baton import (
    Baton,
    BatonLogger,
    render_message,
    serialize_context,
    serialize_error,
)
from dreadnot.models.deployment import Deployment, DeploymentSummary, LogEntry


@pytest.fixture
def sink() -> list[LogEntry]:
    return []


@pytest.fixture
def baton_logger(sink: list[LogEntry]) -> BatonLogger:
    return BatonLogger(
        logging.getLogger("dreadnot.tests.baton"),
        sink=sink.append,
        extra={"stack": "tapkick"},
    )


class TestRenderMessage:
    def test_substitutes_placeholders_from_context(self) -> None:
        text = render_message("executing task ${task}", (), {"task": "task_deploy"})

        assert text == "executing task task_deploy"

    def test_unknown_placeholders_are_left_alone(self) -> None:
        assert render_message("cost ${amount}", (), {"other": 1}) == "cost ${amount}"

    def test_percent_args_are_applied_first(self) -> None:
        assert render_message("%s of ${n}", ("1",), {"n": 3}) == "1 of 3"


class TestSerialization:
    def test_serialize_error_includes_traceback(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            data = serialize_error(e)

        assert data["name"] == "RuntimeError"
        assert data["message"] == "boom"
        assert "Traceback" in data["stack"]

    def test_serialize_context_makes_values_json_safe(self) -> None:
        marker = object()

        data = serialize_context({"path": Path("/srv/app"), "n": 3, "obj": marker})

        assert data["path"] == "/srv/app"
        assert data["n"] == 3
        assert data["obj"] == str(marker)


class TestBatonLogger:
    """Tests for BatonLogger deployment log entries."""

    def test_info_becomes_log_entry(
        self, baton_logger: BatonLogger, sink: list[LogEntry]
    ) -> None:
        baton_logger.info("checking out ${revision}", revision="abc123")

        assert sink == [
            LogEntry(
                lvl=logging.INFO,
                msg="checking out abc123",
                obj={"revision": "abc123"},
            )
        ]

    def test_debug_is_not_recorded(
        self, baton_logger: BatonLogger, sink: list[LogEntry]
    ) -> None:
        baton_logger.debug("noise")

        assert sink == []

    def test_exception_attaches_err(
        self, baton_logger: BatonLogger, sink: list[LogEntry]
    ) -> None:
        try:
            raise ValueError("bad revision")
        except ValueError:
            baton_logger.exception("task failed")

        entry = sink[0]
        assert entry.lvl == logging.ERROR
        assert entry.obj["err"]["name"] == "ValueError"
        assert entry.obj["err"]["message"] == "bad revision"

    def test_records_are_forwarded_to_python_logging(
        self, baton_logger: BatonLogger, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="dreadnot.tests.baton"):
            baton_logger.warning("slow task ${task}", task="task_deploy")

        record = caplog.records[-1]
        assert record.getMessage() == "slow task task_deploy"
        assert record.stack == "tapkick"
        assert record.context == {"task": "task_deploy"}

    @pytest.mark.parametrize("key", ["level", "msg", "self", "args"])
    def test_context_keys_may_shadow_parameter_names(
        self, baton_logger: BatonLogger, sink: list[LogEntry], key: str
    ) -> None:
        baton_logger.info(f"checked ${{{key}}}", **{key: "prod"})
        baton_logger.error(f"failed ${{{key}}}", **{key: "prod"})
        baton_logger.log(logging.WARNING, f"slow ${{{key}}}", **{key: "prod"})

        assert [(e.lvl, e.msg) for e in sink] == [
            (logging.INFO, "checked prod"),
            (logging.ERROR, "failed prod"),
            (logging.WARNING, "slow prod"),
        ]
        assert all(e.obj == {key: "prod"} for e in sink)

    def test_exception_with_level_context(
        self, baton_logger: BatonLogger, sink: list[LogEntry]
    ) -> None:
        try:
            raise ValueError("bad revision")
        except ValueError:
            baton_logger.exception("failed in ${level}", level="prod")

        assert sink[0].msg == "failed in prod"
        assert sink[0].obj["level"] == "prod"
        assert sink[0].obj["err"]["name"] == "ValueError"


class TestBaton:
    def test_deployment_is_a_summary(
        self, make_deployment: Callable[..., Deployment], sink: list[LogEntry]
    ) -> None:
        deployment = make_deployment()
        baton = Baton(
            deployment, BatonLogger(logging.getLogger("dreadnot.tests"), sink.append)
        )

        summary = baton.deployment

        assert isinstance(summary, DeploymentSummary)
        assert not hasattr(summary, "log")
        assert summary.name == "1"

    def test_tasks_can_share_values(
        self, make_deployment: Callable[..., Deployment], sink: list[LogEntry]
    ) -> None:
        baton = Baton(
            make_deployment(), BatonLogger(logging.getLogger("dreadnot.tests"), sink.append)
        )

        baton.build_id = "b-42"

        assert baton.build_id == "b-42"
