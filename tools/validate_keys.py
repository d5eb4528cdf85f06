from __future__ import annotations
import argparse, json, sys
from collections import Counter, defaultdict
from pathlib import Path
from admissions_core.answer_keys import _question_number, _question_type, key_problems
from admissions_core.config import DOMAINS
from admissions_core.types import AnswerKey

# Reports answer-key rows the scorer would reject, before they reach a live form.


def _as_key(i: int, r: dict) -> AnswerKey:
    return AnswerKey(
        label=str(r.get("label") or "").strip(),
        domain=str(r.get("domain") or "").strip().lower(),
        construct=str(r.get("construct") or "General"),
        question_type=_question_type(r.get("question_type")),  # type: ignore[arg-type]
        question_number=_question_number(r.get("question_number"), i) or i,
        question_text=str(r.get("question_text") or ""),
        correct_answer=str(r.get("correct_answer") or "").strip().upper(),
        option_a=str(r.get("option_a") or ""),
        option_b=str(r.get("option_b") or ""),
        option_c=str(r.get("option_c") or ""),
        option_d=str(r.get("option_d") or ""),
    )


def check_rows(rows: list[dict]) -> list[str]:
    out: list[str] = []
    labels = Counter(str(r.get("label") or "").strip().lower() for r in rows)
    for i, r in enumerate(rows, start=1):
        key = _as_key(i, r)
        problems = key_problems(key)
        if _question_number(r.get("question_number"), i) is None:
            problems.append(f"question_number {r.get('question_number')!r} is not a number")
        if key.label and labels[key.label.lower()] > 1:
            problems.append("duplicate label")
        for p in problems:
            out.append(f"{key.label or f'row {i}'}: {p}")
    return out


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Validate answer-key JSON files.")
    ap.add_argument("files", nargs="+")
    args = ap.parse_args(argv)

    failed = False
    for f in args.files:
        try:
            raw = json.loads(Path(f).read_text(encoding="utf-8"))
        except ValueError as exc:
            failed = True
            print(f"{f}: unreadable JSON: {exc}")
            continue
        rows = raw.get("keys", []) if isinstance(raw, dict) else raw
        by_dom = defaultdict(lambda: Counter())
        for r in rows:
            by_dom[str(r.get("domain") or "").lower()][_question_type(r.get("question_type"))] += 1

        print(f"{f}: {len(rows)} keys")
        for d in DOMAINS:
            c = by_dom.get(d)
            if not c:
                print(f"  {d}: none (domain will be reported as not assessed)")
            else:
                print(f"  {d}: MCQ={c['MCQ']} Writing={c['Writing']}")

        problems = check_rows(rows)
        if problems:
            failed = True
            for p in problems:
                print(f"  ✗ {p}")
        else:
            print("  ✓ All keys usable\n")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
