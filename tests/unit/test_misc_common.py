import json
import logging
from pathlib import Path

from geo_correlation.common.fs import read_json, write_json
from geo_correlation.common.ids import generate_run_id, slugify_name
from geo_correlation.common.logging import JsonLineFormatter, build_logger, log_event


def test_generate_run_id_prefix():
    assert generate_run_id().startswith("run-")


def test_slugify_name():
    assert slugify_name("  San Juan   Sacatepéquez ") == "san_juan_sacatepéquez"


def test_write_json_round_trips_unicode(tmp_path: Path):
    target = tmp_path / "nested" / "out.json"
    write_json(target, {"departamento": "Petén"})
    assert "Petén" in target.read_text(encoding="utf-8")
    assert read_json(target) == {"departamento": "Petén"}


def test_json_formatter_emits_stable_fields():
    record = logging.LogRecord("geo_correlation", logging.INFO, __file__, 1, "built", None, None)
    record.stage = "index"
    record.rows_out = 3
    payload = json.loads(JsonLineFormatter().format(record))
    assert payload["message"] == "built"
    assert payload["stage"] == "index"
    assert payload["rows_out"] == 3
    assert payload["dataset"] is None
    assert payload["level"] == "INFO"


def test_build_logger_writes_json_lines(tmp_path: Path):
    log_path = tmp_path / "logs" / "run.jsonl"
    logger = build_logger("run-test", log_path=log_path)
    log_event(logger, "hello", stage="cli", event="COMMAND_START", status="ok")
    for handler in logger.handlers:
        handler.flush()

    [line] = log_path.read_text(encoding="utf-8").splitlines()
    assert json.loads(line)["event"] == "COMMAND_START"
    assert logger.propagate is False
