from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from stereotri.api.rig import status_counts
from stereotri.api.rig_io import load_bearings, load_rig, save_points
from stereotri.core.two_view import DEFAULT_EPS, METHODS
from stereotri.eval.method_comparison import compare_methods, write_report_json
from stereotri.sim.synthetic import make_two_view_scene, write_synthetic_scene


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="stereotri")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log per-batch summaries.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    tri = sub.add_parser("triangulate", help="Triangulate corresponding bearings with a two-view rig.")
    tri.add_argument("rig", type=Path, help="Rig JSON (schema stereotri.rig.v0).")
    tri.add_argument("bearings", type=Path, help="NPZ with bearings0/bearings1 arrays (N,3).")
    tri.add_argument("--method", type=str, default="idw", choices=list(METHODS))
    tri.add_argument("--eps", type=float, default=DEFAULT_EPS, help="Degeneracy tolerance.")
    tri.add_argument("--out", type=Path, required=True, help="Output NPZ (XYZ, status, method).")

    syn = sub.add_parser("make-synthetic", help="Write a synthetic two-view scene (rig, bearings, GT points).")
    syn.add_argument("--out", type=Path, required=True)
    syn.add_argument("--points", type=int, default=100)
    syn.add_argument("--baseline", type=float, default=1.0)
    syn.add_argument("--near", type=float, default=4.0)
    syn.add_argument("--far", type=float, default=8.0)
    syn.add_argument("--noise-deg", type=float, default=0.0, help="Angular noise on bearings (degrees, 1 sigma).")
    syn.add_argument("--seed", type=int, default=0)

    cmp_ = sub.add_parser("compare-methods", help="Compare triangulation methods on a synthetic scene.")
    cmp_.add_argument("--points", type=int, default=500)
    cmp_.add_argument("--baseline", type=float, default=1.0)
    cmp_.add_argument("--noise-deg", type=float, default=0.05)
    cmp_.add_argument("--seed", type=int, default=0)
    cmp_.add_argument("--eps", type=float, default=DEFAULT_EPS)
    cmp_.add_argument(
        "--methods",
        type=str,
        default=",".join(METHODS),
        help="Comma-separated subset of: " + ", ".join(METHODS),
    )
    cmp_.add_argument("--out", type=Path, default=None, help="Optional JSON report path.")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.cmd == "triangulate":
        rig = load_rig(args.rig)
        b0, b1 = load_bearings(args.bearings)
        XYZ, status = rig.triangulate(b0, b1, method=args.method, eps=args.eps)
        save_points(args.out, XYZ, status, args.method)
        print(json.dumps({"method": args.method, "n_points": int(XYZ.shape[0]), "status": status_counts(status)}, sort_keys=True))
        print(f"Wrote {args.out}")
        return 0

    if args.cmd == "make-synthetic":
        scene = make_two_view_scene(
            n_points=args.points,
            baseline=args.baseline,
            depth_range=(args.near, args.far),
            noise_deg=args.noise_deg,
            seed=args.seed,
        )
        write_synthetic_scene(args.out, scene)
        print(f"Wrote {args.out}")
        return 0

    if args.cmd == "compare-methods":
        methods = tuple(m.strip() for m in args.methods.split(",") if m.strip())
        unknown = [m for m in methods if m not in METHODS]
        if unknown:
            parser.error(f"unknown method(s): {', '.join(unknown)}")
        scene = make_two_view_scene(
            n_points=args.points,
            baseline=args.baseline,
            noise_deg=args.noise_deg,
            seed=args.seed,
        )
        report = compare_methods(scene, methods=methods, eps=args.eps)
        for case in report["cases"]:
            print(json.dumps(case, sort_keys=True))
        if args.out is not None:
            write_report_json(report, args.out)
            print(f"Wrote {args.out}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())
