from __future__ import annotations

import io
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sandbox_cli import cli as sandbox_cli
from sandbox_core import logging as core_logging
from sandbox_core.config import load_sandbox_config_dict


REQUIRED_KEYS = (
    "component",
    "operation",
    "container",
    "result",
    "duration_ms",
    "error_class",
)


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord(
        name="claude_sandbox",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


def test_structured_log_filter_injects_required_defaults() -> None:
    record = _record("hello")

    assert core_logging.StructuredLogDefaultsFilter().filter(record) is True
    for key in REQUIRED_KEYS:
        assert hasattr(record, key)
    assert record.duration_ms == 0


def test_structured_log_filter_keeps_explicit_fields() -> None:
    record = _record("started")
    record.container = "claude-app"
    record.result = "started"

    core_logging.StructuredLogDefaultsFilter().filter(record)

    assert record.container == "claude-app"
    assert record.result == "started"


def test_structured_log_filter_redacts_secrets() -> None:
    record = _record("passing %s", "ANTHROPIC_API_KEY=sk-ant-123 TERM=xterm")

    core_logging.StructuredLogDefaultsFilter().filter(record)

    message = record.getMessage()
    assert "sk-ant-123" not in message
    assert "API_KEY=[redacted]" in message
    assert "TERM=xterm" in message


def test_configured_logger_emits_required_fields() -> None:
    stream = io.StringIO()
    logger = logging.getLogger("claude_sandbox.structured_contract_test")
    core_logging.configure_structured_logger(logger, level="info", stream=stream)
    try:
        logger.info("Run decision", extra={"component": "orchestrator", "operation": "decide", "result": "attach"})
        logger.debug("suppressed at info")
    finally:
        logger.handlers.clear()

    output = stream.getvalue()
    for key in REQUIRED_KEYS:
        assert f"{key}=" in output
    assert "component=orchestrator" in output
    assert "operation=decide" in output
    assert "result=attach" in output
    assert "suppressed at info" not in output


def test_normalize_log_level_falls_back_to_warning() -> None:
    assert core_logging.normalize_log_level("DEBUG") == "debug"
    assert core_logging.normalize_log_level("verbose") == "warning"
    assert core_logging.normalize_log_level(None) == "warning"


def test_log_level_precedence_prefers_cli_then_config() -> None:
    config = load_sandbox_config_dict({"logging": {"level": "info"}})

    assert sandbox_cli.resolve_log_level("debug", config) == "debug"
    assert sandbox_cli.resolve_log_level(None, config) == "info"
    assert sandbox_cli.resolve_log_level(None, load_sandbox_config_dict({})) == "warning"


def test_domain_log_levels_apply_to_child_loggers() -> None:
    core_logging.configure_domain_log_levels(
        domains={"Store": "debug", "": "error", "engine": "bogus"},
        logger_prefix="claude_sandbox_domain_test",
        normalize_level=core_logging.normalize_log_level,
    )

    assert logging.getLogger("claude_sandbox_domain_test.store").level == logging.DEBUG
    assert logging.getLogger("claude_sandbox_domain_test.engine").level == logging.WARNING
