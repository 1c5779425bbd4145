from __future__ import annotations

import argparse
import logging
import sys

from .decision import ConsoleDecisionSource, Decision, DecisionSource, ScriptedDecisionSource
from .diagnostics import DiagnosticsRecorder
from .errors import InterfaceFinderError
from .hardware import SimulatedCamera, SimulatedInterfaceScene, SimulatedStage
from .interfaces import CameraInterface, StageInterface
from .pylablib_camera import create_pylablib_camera
from .scan import InterfaceScanController, ScanConfig
from .slice_metric import Roi

_DECISION_ALIASES = {
    "fine": Decision.FINE_SCAN,
    "fine-scan": Decision.FINE_SCAN,
    "f": Decision.FINE_SCAN,
    "repeat": Decision.REPEAT,
    "r": Decision.REPEAT,
    "exit": Decision.EXIT,
    "e": Decision.EXIT,
}


def build_parser() -> argparse.ArgumentParser:
    defaults = ScanConfig()
    parser = argparse.ArgumentParser(
        description="Find the glass/photoresist interface by a coarse-to-fine Z sweep"
    )
    parser.add_argument("--range-nm", type=float, default=defaults.range_nm, help="Coarse sweep range (nm)")
    parser.add_argument("--coarse-step-nm", type=float, default=defaults.coarse_step_nm, help="Coarse step (nm)")
    parser.add_argument("--fine-range-nm", type=float, default=defaults.fine_range_nm, help="Fine sweep range (nm)")
    parser.add_argument("--fine-step-nm", type=float, default=defaults.fine_step_nm, help="Fine step (nm)")
    parser.add_argument("--exposure-ms", type=float, default=defaults.exposure_ms, help="Starting exposure (ms)")
    parser.add_argument("--min-brightness", type=float, default=defaults.min_brightness, help="Lowest accepted batch maximum")
    parser.add_argument("--max-brightness", type=float, default=defaults.max_brightness, help="Highest accepted batch maximum")
    parser.add_argument(
        "--threshold-factor",
        type=float,
        default=defaults.threshold_factor,
        help="Fraction of the batch maximum used as the pixel threshold",
    )
    parser.add_argument("--settle-s", type=float, default=defaults.settle_s, help="Wait after each stage move (s)")
    parser.add_argument("--edge-margin-px", type=int, default=defaults.edge_margin_px, help="Border cropped from every frame")
    parser.add_argument(
        "--colour-channel",
        type=int,
        default=defaults.colour_channel,
        help="Colour plane to evaluate for RGB cameras (0=R, 1=G, 2=B)",
    )
    parser.add_argument(
        "--max-exposure-retries",
        type=int,
        default=defaults.max_exposure_retries,
        help="Exposure corrections allowed per pass; set negative for no limit",
    )
    parser.add_argument("--frame-timeout-s", type=float, default=defaults.frame_timeout_s, help="Camera frame timeout (s)")
    parser.add_argument(
        "--camera",
        choices=["simulate", "orca", "andor", "micromanager"],
        default="simulate",
        help="Camera backend selection",
    )
    parser.add_argument(
        "--camera-index", type=int, default=0, help="Camera index for pylablib backend"
    )
    parser.add_argument(
        "--roi",
        type=int,
        nargs=4,
        metavar=("X", "Y", "WIDTH", "HEIGHT"),
        default=None,
        help="Sensor region of interest for pylablib cameras",
    )
    parser.add_argument("--mm-host", default="localhost", help="Micro-Manager pycromanager host")
    parser.add_argument("--mm-port", type=int, default=4827, help="Micro-Manager pycromanager port")
    parser.add_argument(
        "--mm-allow-standalone-core",
        action="store_true",
        help=(
            "Allow fallback to standalone pymmcore/MMCorePy CMMCore if bridge attach fails. "
            "Use only when intentionally running without attaching to MM GUI."
        ),
    )
    parser.add_argument(
        "--stage",
        choices=["simulate", "micromanager"],
        default=None,
        help=(
            "Stage backend. Defaults: simulate camera -> simulate stage, "
            "hardware cameras -> micromanager stage."
        ),
    )
    parser.add_argument(
        "--sim-interface-nm",
        type=float,
        default=250.0,
        help="Interface position of the simulated sample (nm)",
    )
    parser.add_argument(
        "--decisions",
        default=None,
        help=(
            "Comma separated review answers (fine, repeat, exit) for unattended runs. "
            "Without it, every completed pass is reviewed on the terminal."
        ),
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every imaged slice")
    return parser


def _config_from_args(args) -> ScanConfig:
    return ScanConfig(
        range_nm=args.range_nm,
        coarse_step_nm=args.coarse_step_nm,
        fine_range_nm=args.fine_range_nm,
        fine_step_nm=args.fine_step_nm,
        exposure_ms=args.exposure_ms,
        min_brightness=args.min_brightness,
        max_brightness=args.max_brightness,
        threshold_factor=args.threshold_factor,
        settle_s=args.settle_s,
        edge_margin_px=args.edge_margin_px,
        colour_channel=args.colour_channel,
        max_exposure_retries=(None if args.max_exposure_retries < 0 else args.max_exposure_retries),
        frame_timeout_s=args.frame_timeout_s,
    )


def _parse_decisions(text: str) -> list[Decision]:
    decisions: list[Decision] = []
    for token in text.split(","):
        key = token.strip().lower()
        if not key:
            continue
        if key not in _DECISION_ALIASES:
            raise ValueError(f"Unknown decision {token!r}; use fine, repeat or exit")
        decisions.append(_DECISION_ALIASES[key])
    return decisions


def _build_decision_source(args) -> DecisionSource:
    if args.decisions is None:
        return ConsoleDecisionSource()
    return ScriptedDecisionSource(_parse_decisions(args.decisions))


def _build_camera_and_stage(args) -> tuple[CameraInterface, StageInterface]:
    stage_backend = args.stage or ("simulate" if args.camera == "simulate" else "micromanager")

    if args.camera == "simulate":
        if stage_backend != "simulate":
            raise RuntimeError("The simulated camera can only image the simulated stage.")
        stage = SimulatedStage()
        scene = SimulatedInterfaceScene(interface_nm=args.sim_interface_nm)
        return SimulatedCamera(stage=stage, scene=scene, exposure_ms=args.exposure_ms), stage

    mm_core = None
    if args.camera == "micromanager" or stage_backend == "micromanager":
        from .micromanager import create_micromanager_core

        mm_core = create_micromanager_core(
            host=args.mm_host,
            port=args.mm_port,
            allow_standalone_core=args.mm_allow_standalone_core,
        )

    if stage_backend == "simulate":
        print(
            "Warning: --stage simulate with a hardware camera never moves the sample.",
            file=sys.stderr,
        )
        stage = SimulatedStage()
    else:
        from .micromanager import MicroManagerStage

        stage = MicroManagerStage(core=mm_core)

    if args.camera == "micromanager":
        from .micromanager import MicroManagerCamera

        return MicroManagerCamera(core=mm_core), stage

    roi = Roi(*args.roi) if args.roi is not None else None
    camera = create_pylablib_camera(args.camera, roi=roi, idx=args.camera_index)
    return camera, stage


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _config_from_args(args)
        config.validate()
        decision_source = _build_decision_source(args)
    except ValueError as exc:
        parser.error(str(exc))

    camera, stage = _build_camera_and_stage(args)
    diagnostics = DiagnosticsRecorder()
    camera_started = False

    try:
        camera.start()
        camera_started = True

        controller = InterfaceScanController(
            camera=camera,
            stage=stage,
            config=config,
            decision_source=decision_source,
            diagnostics=diagnostics,
        )
        try:
            result = controller.find_interface()
        except InterfaceFinderError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

        coarse = result.coarse_estimates[-1]
        line = f"coarse={coarse.offset_nm:+0.0f} nm"
        if result.fine_scanned:
            line += f" fine={result.fine_estimates[-1].offset_nm:+0.0f} nm"
        print(
            f"camera={args.camera} passes={len(diagnostics.passes)} retries={len(diagnostics.retries)} "
            f"{line} stage={result.final.position_nm:0.0f} nm exposure={controller.exposure.exposure_ms:0.4g} ms"
        )
        return 0
    finally:
        if camera_started:
            camera.stop()


if __name__ == "__main__":
    raise SystemExit(main())
