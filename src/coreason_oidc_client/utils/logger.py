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
import logging
import os
import sys
from typing import Any

from loguru import logger
from opentelemetry import trace

__all__ = ["logger", "configure_logging", "anonymize"]

ENV_LOG_LEVEL = "COREASON_OIDC_LOG_LEVEL"
ENV_LOG_JSON = "COREASON_OIDC_LOG_JSON"
ENV_LOG_FILE = "COREASON_OIDC_LOG_FILE"


class InterceptHandler(logging.Handler):
    """
    Redirects standard logging messages (httpx, httpcore, authlib) to Loguru.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that issued the stdlib logging call
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename in (logging.__file__, __file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def trace_id_injector(record: dict[str, Any]) -> None:
    """
    Loguru patcher adding the active OpenTelemetry trace and span ids to `extra`.
    """
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        record["extra"]["trace_id"] = format(ctx.trace_id, "032x")
        record["extra"]["span_id"] = format(ctx.span_id, "016x")


def anonymize(value: str, salt: str) -> str:
    """
    HMAC-SHA256 digest of a subject identifier, for logs and span attributes.

    Args:
        value: The identifier to anonymize.
        salt: The secret salt.

    Returns:
        str: The hex digest.
    """
    return hmac.new(salt.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()


def configure_logging() -> None:
    """
    Configures the logger from environment variables.

    `COREASON_OIDC_LOG_LEVEL` sets the level (default INFO), `COREASON_OIDC_LOG_JSON=true`
    switches the console sink to serialized JSON on stdout, and `COREASON_OIDC_LOG_FILE`
    adds a rotating JSON file sink. Call again to reload after the environment changes.
    """
    log_level = os.getenv(ENV_LOG_LEVEL, "INFO").upper()
    log_json = os.getenv(ENV_LOG_JSON, "false").lower() == "true"
    log_file = os.getenv(ENV_LOG_FILE)

    try:
        logger.level(log_level)
    except ValueError:
        log_level = "INFO"

    logger.configure(handlers=[], patcher=trace_id_injector)

    if log_json:
        logger.add(sys.stdout, level=log_level, serialize=True)
    else:
        logger.add(
            sys.stderr,
            level=log_level,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
                "<level>{message}</level>"
            ),
        )

    if log_file:
        try:
            logger.add(
                log_file,
                rotation="500 MB",
                retention="10 days",
                serialize=True,
                enqueue=True,
                level=log_level,
            )
        except (PermissionError, OSError):
            # Read-only filesystems keep console logging only
            logger.warning(f"Cannot write log file {log_file}, file logging disabled")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    numeric_level = logging.getLevelName(log_level)
    logging.getLogger().setLevel(numeric_level if isinstance(numeric_level, int) else logging.INFO)


configure_logging()
