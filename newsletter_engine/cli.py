from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path

from .config import load_config
from .errors import PipelineError
from .html_generator import LINK_MODES, generate_html
from .job import (
    JobPaths,
    create_job_dirs,
    init_job_outputs,
    load_blocks,
    new_job_id,
    persist_blocks,
    record_error,
    snapshot_input,
)
from .processor import MODES, guess_mime, process_file
from .types import Block, block_from_dict
from .writer import JobWriter

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="newsletter_engine")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Convert a PDF or image into newsletter blocks")
    run.add_argument("--input", required=True, help="Input file (pdf or image)")
    run.add_argument("--mime", default=None, help="MIME type (guessed from the file name when omitted)")
    run.add_argument(
        "--slice-height", type=int, default=None,
        help="Strip height in px at 1600px width; <=0 disables slicing (default from config)",
    )
    run.add_argument("--mode", default="slice", choices=list(MODES), help="PDF strategy")
    run.add_argument("--workspace", default="./workspace", help="Workspace root")
    run.add_argument("--config", default=str(Path("config") / "default.json"), help="Config path")

    export = sub.add_parser("export", help="Export a completed job as an HTML email")
    export.add_argument("--job-dir", required=True, help="Job directory (workspace/jobs/<job_id>)")
    export.add_argument("--out", required=True, help="Output HTML path")
    export.add_argument("--title", default="Newsletter")
    export.add_argument("--link-mode", default=None, choices=list(LINK_MODES))
    export.add_argument("--config", default=str(Path("config") / "default.json"), help="Config path")
    export.add_argument("--embed-images", action="store_true", help="Inline uploaded images as data URLs")

    return p


def cmd_run(args: argparse.Namespace) -> int:
    job_id = new_job_id()
    paths = create_job_dirs(args.workspace, job_id)
    init_job_outputs(paths)
    cfg = load_config(args.config)

    mime = args.mime or guess_mime(args.input)
    slice_height = args.slice_height
    if slice_height is None:
        slice_height = int(cfg.slice.get("default_slice_height", 0))
    job_meta = {
        "job_id": job_id,
        "input": {"path": str(args.input), "mime_type": mime},
        "mode": args.mode,
        "slice_height": int(slice_height),
    }
    writer = JobWriter(paths=paths)

    if not Path(args.input).is_file():
        record_error(paths, page_id=None, stage="input", message=f"missing: {args.input}")
        writer.write_failed(job_meta, "input", f"missing: {args.input}")
        print(f"run_failed: missing input {args.input}")
        return 1

    try:
        # The snapshot is the working copy; the pipeline removes it when done.
        working = snapshot_input(paths, args.input)
    except OSError as e:
        record_error(paths, page_id=None, stage="input", message=f"snapshot_failed: {e}")
        writer.write_failed(job_meta, "input", f"snapshot_failed: {e}")
        print(f"run_failed: cannot copy input {args.input}: {e}")
        return 1

    try:
        result = process_file(working, mime, slice_height, mode=args.mode, cfg=cfg, delete_input=True)
    except PipelineError as e:
        record_error(paths, page_id=None, stage=e.stage, message=str(e.args[0]))
        writer.write_failed(job_meta, e.stage, str(e.args[0]))
        print(f"run_failed: {e}")
        return 1

    for err in result.errors:
        record_error(paths, page_id=err.get("page_id"), stage=err.get("stage", "?"), message=err.get("message", ""))

    blocks = persist_blocks(result.blocks, paths.uploads_dir)
    writer.write_final(job_meta=job_meta, blocks=blocks, metrics=result.metrics)
    print(str(paths.job_dir))
    return 0


def _embed_uploads(blocks: list[Block], job_dir: Path) -> list[Block]:
    out: list[Block] = []
    for block in blocks:
        src = getattr(block, "src", None)
        if src and src.startswith("/uploads/"):
            path = job_dir / src.lstrip("/")
            if path.is_file():
                out.append(replace(block, src=None, buffer=path.read_bytes()))
                continue
            logger.warning("Missing upload for block %s: %s", block.id, src)
        out.append(block)
    return out


def cmd_export(args: argparse.Namespace) -> int:
    paths = JobPaths.for_job_dir(args.job_dir)
    cfg = load_config(args.config)
    link_mode = args.link_mode or str(cfg.html.get("link_mode", "map"))
    display_width = int(cfg.html.get("display_width", 800))
    try:
        blocks = [block_from_dict(b) for b in load_blocks(paths)]
        if args.embed_images:
            blocks = _embed_uploads(blocks, paths.job_dir)
        html_doc = generate_html(blocks, args.title, link_mode=link_mode, display_width=display_width)
    except (OSError, ValueError) as e:
        print(f"export_failed: {e}")
        return 1

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(html_doc, encoding="utf-8")
    print(f"exported={len(blocks)} out={out}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if args.command == "run":
        return cmd_run(args)

    if args.command == "export":
        return cmd_export(args)

    raise SystemExit(2)


if __name__ == "__main__":
    raise SystemExit(main())
