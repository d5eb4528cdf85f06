from __future__ import annotations
import argparse, json, logging, sys
from pathlib import Path
from admissions_core.config import load_config
from admissions_core.pipeline import ScoringPipeline
from admissions_core.reporting import build_report_input, save_report_input


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Score one exported form submission offline.")
    ap.add_argument("payload", help="path to the submission JSON")
    ap.add_argument("--grade", type=int, default=None, help="override the grade found in the payload")
    ap.add_argument("--school-id", default="")
    ap.add_argument("--form-version", default=None)
    ap.add_argument("--submission-id", default=None)
    ap.add_argument("--out", default=None, help="write the report input here instead of stdout")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    path = Path(args.payload)
    payload = json.loads(path.read_text(encoding="utf-8"))
    sid = args.submission_id or path.stem

    result = ScoringPipeline.from_cfg(load_config()).run(
        sid, payload, grade=args.grade, school_id=args.school_id, form_version=args.form_version)
    if args.out:
        print(f"Report input saved to: {save_report_input(result, args.out)}")
    else:
        json.dump(build_report_input(result), sys.stdout, indent=2, ensure_ascii=False)
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
