import sys
from types import SimpleNamespace

import pytest

from interface_finder import cli
from interface_finder.decision import ConsoleDecisionSource, Decision, ScriptedDecisionSource
from interface_finder.hardware import SimulatedCamera, SimulatedStage


def _parse(*argv: str):
    return cli.build_parser().parse_args(list(argv))


def test_parser_defaults_match_scan_config() -> None:
    args = _parse()
    config = cli._config_from_args(args)

    assert args.camera == "simulate"
    assert args.stage is None
    assert args.decisions is None
    assert config.range_nm == 2000
    assert config.coarse_step_nm == 50
    assert config.fine_range_nm == 400
    assert config.fine_step_nm == 10
    assert config.max_exposure_retries == 10


def test_negative_retry_limit_means_unbounded() -> None:
    config = cli._config_from_args(_parse("--max-exposure-retries", "-1"))
    assert config.max_exposure_retries is None


def test_parse_decisions_accepts_aliases() -> None:
    assert cli._parse_decisions("fine, r,EXIT,,e") == [
        Decision.FINE_SCAN,
        Decision.REPEAT,
        Decision.EXIT,
        Decision.EXIT,
    ]


def test_parse_decisions_rejects_unknown_token() -> None:
    with pytest.raises(ValueError, match="Unknown decision"):
        cli._parse_decisions("fine,maybe")


def test_decision_source_selection() -> None:
    assert isinstance(cli._build_decision_source(_parse()), ConsoleDecisionSource)
    scripted = cli._build_decision_source(_parse("--decisions", "exit"))
    assert isinstance(scripted, ScriptedDecisionSource)
    assert scripted.remaining == 1


def test_simulated_camera_uses_simulated_stage() -> None:
    camera, stage = cli._build_camera_and_stage(_parse("--sim-interface-nm", "-150"))

    assert isinstance(camera, SimulatedCamera)
    assert isinstance(stage, SimulatedStage)


def test_simulated_camera_refuses_hardware_stage() -> None:
    with pytest.raises(RuntimeError, match="simulated camera"):
        cli._build_camera_and_stage(_parse("--stage", "micromanager"))


def test_pylablib_camera_defaults_to_micromanager_stage(monkeypatch) -> None:
    fake_core = SimpleNamespace(getFocusDevice=lambda: "Z")
    created: dict = {}

    def _fake_create_core(**kwargs):
        created["core"] = kwargs
        return fake_core

    def _fake_create_camera(kind, roi=None, **kwargs):
        created["camera"] = (kind, roi, kwargs)
        return SimpleNamespace(kind=kind)

    import interface_finder.micromanager as mm

    monkeypatch.setattr(mm, "create_micromanager_core", _fake_create_core)
    monkeypatch.setattr(cli, "create_pylablib_camera", _fake_create_camera)

    camera, stage = cli._build_camera_and_stage(
        _parse("--camera", "orca", "--camera-index", "1", "--roi", "200", "400", "202", "208")
    )

    assert camera.kind == "orca"
    assert isinstance(stage, mm.MicroManagerStage)
    assert created["core"] == {"host": "localhost", "port": 4827, "allow_standalone_core": False}
    kind, roi, kwargs = created["camera"]
    assert (roi.x, roi.y, roi.width, roi.height) == (200, 400, 202, 208)
    assert kwargs == {"idx": 1}


def test_main_runs_simulated_coarse_and_fine_scan(monkeypatch, capsys) -> None:
    monkeypatch.setattr(
        sys,
        "argv",
        ["interface-finder", "--decisions", "fine,exit", "--settle-s", "0", "--sim-interface-nm", "250"],
    )

    assert cli.main() == 0

    out = capsys.readouterr().out
    assert "camera=simulate" in out
    assert "passes=2" in out
    assert "coarse=+250 nm" in out
    assert "fine=+0 nm" in out
    assert "stage=250 nm" in out


def test_main_reports_exhausted_exposure_retries(monkeypatch, capsys) -> None:
    # A far-away interface never gets bright enough within one correction.
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "interface-finder",
            "--decisions",
            "exit",
            "--settle-s",
            "0",
            "--sim-interface-nm",
            "50000",
            "--max-exposure-retries",
            "1",
        ],
    )

    assert cli.main() == 1
    assert "Error:" in capsys.readouterr().err


def test_main_reports_running_out_of_scripted_decisions(monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "argv", ["interface-finder", "--decisions", "fine", "--settle-s", "0"])

    assert cli.main() == 1
    assert "Scripted decisions exhausted" in capsys.readouterr().err


def test_main_rejects_invalid_configuration(monkeypatch) -> None:
    monkeypatch.setattr(sys, "argv", ["interface-finder", "--range-nm", "2000", "--coarse-step-nm", "300"])

    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 2
