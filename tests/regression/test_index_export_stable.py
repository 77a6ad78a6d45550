from __future__ import annotations

from pathlib import Path

import pytest

from geo_correlation.cli import parse_args, run_command

FIXTURES = Path(__file__).resolve().parents[1] / "fixtures"


def _run_once(config_path: Path, output: Path, run_id: str) -> None:
    args = parse_args(["index", "--config", str(config_path), "--output", str(output), "--run-id", run_id])
    assert run_command(args) == 0


@pytest.mark.regression
def test_index_export_is_byte_stable_for_same_inputs(tmp_path: Path):
    config_path = tmp_path / "correlation.yml"
    config_path.write_text(
        f"""dataset_store:
  kind: json
  snapshot_path: {FIXTURES / 'datasets.json'}
boundaries:
  departments: {FIXTURES / 'departamentos.geojson'}
  municipalities: {FIXTURES / 'municipios.geojson'}
index: {{}}
relationships: {{}}
""",
        encoding="utf-8",
    )

    _run_once(config_path, tmp_path / "first.json", "run-a")
    _run_once(config_path, tmp_path / "second.json", "run-b")

    first = (tmp_path / "first.json").read_bytes()
    assert first == (tmp_path / "second.json").read_bytes()
    assert "Juan Pérez".encode("utf-8") in first
