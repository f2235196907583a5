from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, List


def _iter_images(root: Path, recursive: bool) -> List[Path]:
	exts = {".jpg", ".jpeg", ".png", ".webp", ".heic", ".heif"}
	if recursive:
		return [p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in exts]
	return [p for p in root.iterdir() if p.is_file() and p.suffix.lower() in exts]


def _safe_relpath(path: Path, base: Path) -> Path:
	try:
		return path.relative_to(base)
	except ValueError:
		# Fallback: flatten if something odd happens
		return Path(path.name)


def main(argv: List[str] | None = None) -> int:
	parser = argparse.ArgumentParser(description="Batch anonymize vehicle photos (plate blur + watermark).")
	parser.add_argument("--input", required=True, help="Input folder containing images")
	parser.add_argument("--output", required=True, help="Output folder to write processed JPEGs")
	parser.add_argument("--recursive", action="store_true", help="Recurse into subfolders")
	parser.add_argument("--report", default="", help="Optional JSON report path")
	args = parser.parse_args(argv)

	in_dir = Path(args.input).expanduser().resolve()
	out_dir = Path(args.output).expanduser().resolve()

	if not in_dir.is_dir():
		print(f"Input folder does not exist: {in_dir}")
		return 2
	out_dir.mkdir(parents=True, exist_ok=True)

	# Ensure repo-root imports work when running from anywhere
	repo_root = Path(__file__).resolve().parents[1]
	if str(repo_root) not in sys.path:
		sys.path.insert(0, str(repo_root))

	from plate_privacy.config import get_pipeline_config
	from plate_privacy.errors import ProcessingError
	from plate_privacy.logging_utils import configure_logging
	from plate_privacy.pipeline import ImagePipeline

	configure_logging()
	config = get_pipeline_config()
	pipeline = ImagePipeline(config)
	print(f"Detection method: {config.detection_method.value}")

	images = _iter_images(in_dir, args.recursive)
	if not images:
		print(f"No images found in: {in_dir}")
		return 0

	report: Dict[str, Dict] = {}
	blurred = 0
	no_plates = 0
	failed = 0

	for src in images:
		rel = _safe_relpath(src, in_dir)
		dst = (out_dir / rel).with_suffix(".jpg").resolve()
		dst.parent.mkdir(parents=True, exist_ok=True)
		key = str(rel).replace("\\", "/")

		try:
			out_bytes, meta = pipeline.process_with_meta(src.read_bytes())
		except ProcessingError as e:
			failed += 1
			report[key] = {"input": str(src), "status": "failed", "stage": e.stage, "error": str(e)}
			continue

		dst.write_bytes(out_bytes)
		if meta.get("status") == "blurred":
			blurred += 1
		else:
			no_plates += 1
		report[key] = {"input": str(src), "output": str(dst), **meta}

	print(f"Processed: {len(images) - failed}/{len(images)} | blurred: {blurred} | no_plates: {no_plates} | failed: {failed}")

	if args.report:
		rep_path = Path(args.report).expanduser().resolve()
		rep_path.parent.mkdir(parents=True, exist_ok=True)
		rep_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
		print(f"Report written: {rep_path}")

	return 0 if failed == 0 else 5


if __name__ == "__main__":
	raise SystemExit(main())
