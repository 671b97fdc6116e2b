from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

from .config import OCR_ENGINES, EngineConfig, load_config
from .contract import validate_job_dir
from .exporter import export_csv
from .job import create_job_dirs, init_job_outputs, new_job_id, snapshot_input
from .pipeline import EnginePipeline, PipelineError, RunOptions


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="swatch_engine")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Extract reference colors and swatches from a catalog page")
    run.add_argument("--input", required=True, help="Input path (pdf file, image file or images folder)")
    run.add_argument("--type", required=True, choices=["pdf", "images"], help="Input type")
    run.add_argument("--workspace", default="./workspace", help="Workspace root")
    run.add_argument("--config", default=None, help="Config path (e.g. config/default.json)")
    run.add_argument("--page", type=int, default=1, help="1-based page to process")
    run.add_argument("--dpi", type=int, default=None, help="Render PDF at this DPI instead of a target width")
    run.add_argument("--target-width", type=int, default=None, help="Rendered page width in pixels (pdf default 2400)")
    run.add_argument("--ocr-engine", default=None, choices=list(OCR_ENGINES))
    run.add_argument("--lang", default=None, help="OCR language (e.g. en)")
    run.add_argument("--workers", type=int, default=None, help="Parallel recognition workers")
    run.add_argument("--timeout", type=float, default=None, help="Per-region recognition timeout (seconds)")
    run.add_argument(
        "--use-mocked-ocr",
        default=None,
        help="JSON file with recorded text per region id (skips the OCR engine)",
    )
    run.add_argument("--reference-from", default=None, help="Reuse the corrected palette of a previous job dir")
    run.add_argument("--palette", default=None, help="Expected palette JSON used for validation")
    run.add_argument("--no-validation", action="store_true", help="Skip palette validation")
    run.add_argument("--debug", action="store_true", help="Write annotated overlays under debug/")
    run.add_argument("--export-csv", action="store_true", help="Write the CSV mappings into the job dir")

    validate = sub.add_parser("validate", help="Validate the output contract of a job")
    validate.add_argument("--job-dir", required=True, help="Job directory (workspace/jobs/<job_id>)")

    export = sub.add_parser("export", help="Export style -> color CSVs from a completed job")
    export.add_argument("--job-dir", required=True, help="Job directory (workspace/jobs/<job_id>)")
    export.add_argument("--out-dir", default=None, help="Output directory (default: job dir)")

    return p


def _apply_overrides(cfg: EngineConfig, args: argparse.Namespace) -> EngineConfig:
    ocr = cfg.ocr
    if args.ocr_engine is not None:
        ocr = replace(ocr, engine=args.ocr_engine)
    if args.lang is not None:
        ocr = replace(ocr, lang=args.lang)
    if args.workers is not None:
        ocr = replace(ocr, workers=args.workers)
    if args.timeout is not None:
        ocr = replace(ocr, timeout_s=args.timeout)
    validation = cfg.validation
    if args.no_validation:
        validation = replace(validation, enabled=False)
    return replace(cfg, ocr=ocr, validation=validation)


def cmd_run(args: argparse.Namespace) -> int:
    try:
        cfg = _apply_overrides(load_config(args.config), args)
    except ValueError as e:
        print(f"invalid_config: {e}")
        return 2

    job_id = new_job_id()
    paths = create_job_dirs(args.workspace, job_id)
    init_job_outputs(paths)
    snapshot_input(paths, args.input, args.type)

    opts = RunOptions(
        input_path=args.input,
        input_type=args.type,
        page=args.page,
        dpi=args.dpi,
        target_width=args.target_width,
        mocked_ocr_path=args.use_mocked_ocr,
        reference_from=args.reference_from,
        palette_path=args.palette,
        debug=bool(args.debug),
    )

    try:
        result = EnginePipeline(paths=paths, cfg=cfg, opts=opts).run(job_id=job_id)
    except PipelineError as e:
        print(f"run_failed: {e}")
        return 1

    print(
        f"reference_colors={len(result.palette)} method={result.reference_method} "
        f"swatches={len(result.swatches)} colors={result.stats.total_colors} "
        f"matched={result.stats.matched_colors}"
    )

    if args.export_csv:
        stats = export_csv(job_dir=paths.job_dir)
        print(f"exported={stats.colors_exported} unmatched={stats.colors_unmatched}")

    print(str(paths.job_dir))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    report = validate_job_dir(Path(args.job_dir))

    print(f"missing_contract_files={report.missing_contract_files}")
    print(f"invalid_reference_colors={report.invalid_reference_colors}")
    print(f"invalid_swatches={report.invalid_swatches}")
    print(f"invalid_matches={report.invalid_matches}")

    if report.errors:
        for m in report.errors:
            print(m)
        return 1

    print("OK")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    try:
        stats = export_csv(job_dir=args.job_dir, out_dir=args.out_dir)
        print(
            f"swatches={stats.swatches_seen} exported={stats.colors_exported} "
            f"unmatched={stats.colors_unmatched} without_colors={stats.swatches_without_colors}"
        )
        print(stats.simple_path)
        print(stats.detailed_path)
        return 0
    except Exception as e:
        print(f"export_failed: {e}")
        return 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return cmd_run(args)

    if args.command == "validate":
        return cmd_validate(args)

    if args.command == "export":
        return cmd_export(args)

    raise SystemExit(2)


if __name__ == "__main__":
    raise SystemExit(main())
