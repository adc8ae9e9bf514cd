"""End-to-end tests of the batten-lab command line."""

import os
import sys

import pytest
import yaml
from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from batten_lab.main import build_parser, load_config, main

SCENARIO_FLAGS = ["--weight", "2", "--length", "1000",
                  "--self", "5", "8", "5", "--weighted", "30", "60", "28"]


@pytest.fixture()
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "profiles_path": str(tmp_path / "profiles.json"),
        "output_dir": str(tmp_path / "out"),
        "chart": False,
        "log_level": "WARNING",
    }))
    return str(path)


def run(config_path, *args):
    return main(["--config", config_path, *args])


def test_load_config_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.yaml"))
    assert config["output_dir"] == "output"
    assert config["chart"] is True


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_calc(config_path, capsys):
    assert run(config_path, "calc", *SCENARIO_FLAGS) == 0
    out = capsys.readouterr().out
    assert "Front bend:" in out
    assert "48.1 %" in out
    assert "7.858 N*m^2" in out


def test_calc_formulas(config_path, capsys):
    assert run(config_path, "calc", *SCENARIO_FLAGS, "--formulas") == 0
    out = capsys.readouterr().out
    assert "=IF($D$6=0,0,MAX(0.1,$B$14-$B$10)/$D$6*100)" in out


def test_calc_from_input_file(config_path, tmp_path, capsys):
    input_path = tmp_path / "test.yaml"
    input_path.write_text(yaml.safe_dump({
        "testWeight": 2, "testLength": 1000,
        "self14": 5, "self12": 8, "self34": 5,
        "weighted14": 30, "weighted12": 60, "weighted34": 28,
    }))
    assert run(config_path, "calc", "--input", str(input_path), "--weight", "4") == 0
    out = capsys.readouterr().out
    assert "15.716 N*m^2" in out


def test_missing_input_file(config_path, tmp_path):
    assert run(config_path, "calc", "--input", str(tmp_path / "nope.yaml")) == 1


def test_export_and_verify(config_path, tmp_path, capsys):
    assert run(config_path, "export", *SCENARIO_FLAGS, "--name", "Batten 3") == 0
    path = capsys.readouterr().out.strip()
    assert path == str(tmp_path / "out" / "Batten 3.xlsx")
    assert os.path.exists(path)

    assert run(config_path, "verify", path) == 0
    out = capsys.readouterr().out
    assert out.count("OK") == 7
    assert "stale" not in out


def test_verify_missing_report(config_path, tmp_path):
    assert run(config_path, "verify", str(tmp_path / "missing.xlsx")) == 1


def test_profile_commands(config_path, capsys):
    assert run(config_path, "profile", "save", "Spruce", *SCENARIO_FLAGS) == 0
    profile_id = capsys.readouterr().out.split()[0]

    assert run(config_path, "profile", "list") == 0
    assert "Spruce" in capsys.readouterr().out

    assert run(config_path, "profile", "show", "spruce") == 0
    out = capsys.readouterr().out
    assert profile_id in out
    assert "weighted_12" in out

    assert run(config_path, "profile", "rename", profile_id, "Spruce recut") == 0
    assert run(config_path, "calc", "--profile", "Spruce recut") == 0
    assert "48.1 %" in capsys.readouterr().out

    assert run(config_path, "profile", "delete", profile_id) == 0
    assert run(config_path, "profile", "show", profile_id) == 1


def test_unknown_profile(config_path):
    assert run(config_path, "calc", "--profile", "nobody") == 1


def test_compare(config_path, tmp_path, capsys):
    assert run(config_path, "compare") == 0
    assert "No saved profiles" in capsys.readouterr().out

    run(config_path, "profile", "save", "Spruce", *SCENARIO_FLAGS)
    run(config_path, "profile", "save", "Carbon", *SCENARIO_FLAGS, "--weighted", "20", "50", "20")
    capsys.readouterr()

    csv_path = tmp_path / "comparison.csv"
    assert run(config_path, "compare", "--csv", str(csv_path)) == 0
    out = capsys.readouterr().out
    assert "Spruce" in out and "Carbon" in out
    assert csv_path.read_text().splitlines()[0].startswith("name,net_14")


def test_verify_unsupported_function(config_path, tmp_path, capsys):
    assert run(config_path, "export", *SCENARIO_FLAGS, "--name", "edited") == 0
    path = capsys.readouterr().out.strip()
    wb = load_workbook(path)
    wb["Report"]["F7"] = "=SUMPRODUCT(A10:C10,A14:C14)"
    wb.save(path)
    wb.close()
    assert run(config_path, "verify", path) == 1


def test_verify_not_a_workbook(config_path, tmp_path):
    path = tmp_path / "bad.xlsx"
    path.write_text("not a spreadsheet")
    assert run(config_path, "verify", str(path)) == 1


def test_calc_extreme_length(config_path, capsys):
    assert run(config_path, "calc", *SCENARIO_FLAGS, "--length", "1e110") == 0
    assert "inf N*m^2" in capsys.readouterr().out
