# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc_client

import hashlib
import hmac
import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from loguru import logger
from opentelemetry.sdk.trace import TracerProvider

from coreason_oidc_client.utils.logger import anonymize, configure_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    yield
    configure_logging()


def test_anonymize_is_salted_hmac() -> None:
    expected = hmac.new(b"salt", b"user-1", hashlib.sha256).hexdigest()
    assert anonymize("user-1", "salt") == expected
    assert anonymize("user-1", "other") != expected


def test_json_output(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_OIDC_LOG_JSON": "true"}):
        configure_logging()
        logger.info("JSON Message")

    captured = capsys.readouterr()
    assert captured.err == ""
    record = json.loads(captured.out)
    assert record["record"]["message"] == "JSON Message"
    assert record["record"]["level"]["name"] == "INFO"


def test_log_level(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_OIDC_LOG_LEVEL": "WARNING"}):
        configure_logging()
        logger.info("Info message")
        logger.warning("Warning message")

    captured = capsys.readouterr()
    assert "Info message" not in captured.err
    assert "Warning message" in captured.err


def test_invalid_log_level_defaults_to_info(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_OIDC_LOG_LEVEL": "LOUD"}):
        configure_logging()
        logger.info("Info message")
        logger.debug("Debug message")

    captured = capsys.readouterr()
    assert "Info message" in captured.err
    assert "Debug message" not in captured.err


def test_reconfiguration_does_not_duplicate(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging()
    configure_logging()
    logger.info("Single message")

    assert capsys.readouterr().err.count("Single message") == 1


def test_file_sink(tmp_path: Path) -> None:
    log_file = tmp_path / "oidc.log"
    with patch.dict(os.environ, {"COREASON_OIDC_LOG_FILE": str(log_file)}):
        configure_logging()
        logger.info("To file")
        logger.complete()

    record = json.loads(log_file.read_text().splitlines()[0])
    assert record["record"]["message"] == "To file"


def test_unwritable_file_sink_keeps_console(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    with patch.dict(os.environ, {"COREASON_OIDC_LOG_FILE": str(blocker / "oidc.log")}):
        configure_logging()

    assert "file logging disabled" in capsys.readouterr().err


def test_stdlib_logging_intercepted(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging()
    logging.getLogger("httpx").info("HTTP Request: GET https://idp.example")

    assert "HTTP Request: GET https://idp.example" in capsys.readouterr().err


def test_trace_id_injected(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_OIDC_LOG_JSON": "true"}):
        configure_logging()
        tracer = TracerProvider().get_tracer("test")
        with tracer.start_as_current_span("op") as span:
            logger.info("Inside span")
            trace_id = format(span.get_span_context().trace_id, "032x")

    record = json.loads(capsys.readouterr().out)
    assert record["record"]["extra"]["trace_id"] == trace_id
