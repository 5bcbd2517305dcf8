"""Structured logging helpers: masking, JSON formatting, and handler setup."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from BuildFetch.ArtifactDownload.logging_utils import (
    LOGGER_NAME,
    JSONFormatter,
    mask_sensitive_data,
    setup_logging,
)
from BuildFetch.ArtifactDownload.settings import LoggingSettings


def test_mask_sensitive_data_masks_keys_and_token_values():
    payload = {
        "token": "plain",
        "headers": {"Authorization": "Bearer abc"},
        "note": "used ghp_" + "a" * 36 + " for auth",
        "status": 200,
    }

    masked = mask_sensitive_data(payload)

    assert masked["token"] == "***masked***"
    assert masked["headers"] == {"Authorization": "***masked***"}
    assert masked["note"] == "used ***masked*** for auth"
    assert masked["status"] == 200


def test_json_formatter_includes_extra_fields():
    record = logging.makeLogRecord(
        {
            "name": LOGGER_NAME,
            "levelname": "INFO",
            "msg": "resolved %s",
            "args": ("artifact",),
            "stage": "resolve",
            "artifact_id": 11,
        }
    )

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "resolved artifact"
    assert payload["level"] == "INFO"
    assert payload["stage"] == "resolve"
    assert payload["artifact_id"] == 11
    assert payload["timestamp"].endswith("Z")


def test_setup_logging_writes_jsonl_and_replaces_handlers(tmp_path):
    config = LoggingSettings(dir=tmp_path, emit_json_logs=True, level="DEBUG")

    setup_logging(config)
    logger = setup_logging(config)
    managed = [handler for handler in logger.handlers if getattr(handler, "_artifetch_managed", False)]
    assert len(managed) == 2
    assert logger.level == logging.DEBUG

    logging.getLogger(f"{LOGGER_NAME}.cache").info("cache entry updated", extra={"stage": "cache"})
    for handler in managed:
        handler.flush()

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    lines = (tmp_path / f"artifetch-{today}.jsonl").read_text(encoding="utf-8").splitlines()
    entry = json.loads(lines[-1])
    assert entry["message"] == "cache entry updated"
    assert entry["stage"] == "cache"
    assert entry["logger"] == f"{LOGGER_NAME}.cache"


def test_setup_logging_level_override():
    logger = setup_logging(LoggingSettings(emit_json_logs=False), level="warning")

    assert logger.level == logging.WARNING
    assert not logger.propagate
