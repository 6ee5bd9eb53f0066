#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _bootstrap_pythonpath() -> None:
    import sys

    src = _repo_root() / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


_bootstrap_pythonpath()

from study_notes.config import get_settings  # noqa: E402
from study_notes.intake.collector import InputCollector  # noqa: E402
from study_notes.notes.request import MissingFieldError  # noqa: E402
from study_notes.workflow.generation import ChecklistViolationError, GenerationWorkflow  # noqa: E402


@dataclass
class Sample:
    topic: str
    level: str
    emphasis: list[str] = field(default_factory=list)
    note: str = ""


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate how often generated notes pass the formatting checklist.")
    parser.add_argument(
        "--input",
        default="eval/notes_requests.sample.jsonl",
        help="JSONL file with fields: topic, level, optional emphasis (list) and note.",
    )
    parser.add_argument(
        "--output-md",
        default="",
        help="Markdown report path. Default: eval/reports/notes_eval_<timestamp>.md",
    )
    parser.add_argument(
        "--output-json",
        default="",
        help="JSON report path. Default: eval/reports/notes_eval_<timestamp>.json",
    )
    parser.add_argument("--limit", type=int, default=0, help="Limit evaluated samples (0 means all).")
    return parser.parse_args()


def load_samples(path: Path, limit: int) -> list[Sample]:
    samples: list[Sample] = []
    with path.open("r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            raw = line.strip()
            if not raw:
                continue
            row = json.loads(raw)
            topic = str(row.get("topic", "")).strip()
            level = str(row.get("level", "")).strip().lower()
            emphasis = [str(item).strip() for item in row.get("emphasis", []) if str(item).strip()]
            note = str(row.get("note", "")).strip()
            if not topic:
                raise ValueError(f"Invalid sample at line {line_no}: topic required")
            samples.append(Sample(topic=topic, level=level, emphasis=emphasis, note=note))
            if limit > 0 and len(samples) >= limit:
                break
    if not samples:
        raise ValueError("No samples loaded.")
    return samples


async def evaluate(samples: list[Sample]) -> list[dict[str, Any]]:
    workflow = GenerationWorkflow(get_settings())
    collector = InputCollector()
    rows: list[dict[str, Any]] = []
    for sample in samples:
        row: dict[str, Any] = {
            "topic": sample.topic,
            "level": sample.level,
            "note": sample.note,
            "outcome": "",
            "attempts": 0,
            "violations": [],
            "warnings": [],
        }
        try:
            request = collector.from_fields(sample.topic, sample.level, sample.emphasis)
            result = await workflow.run(request)
            row.update(
                outcome="passed",
                attempts=result.attempts,
                warnings=result.report.warnings,
            )
        except MissingFieldError as exc:
            row.update(outcome="clarification", violations=[f"missing:{name}" for name in exc.fields])
        except ChecklistViolationError as exc:
            row.update(outcome="failed", attempts=exc.attempts, violations=exc.violations)
        rows.append(row)
    return rows


def compute_metrics(rows: list[dict[str, Any]]) -> dict[str, Any]:
    outcomes = Counter(row["outcome"] for row in rows)
    generated = [row for row in rows if row["outcome"] in {"passed", "failed"}]
    violation_counts = Counter(
        violation.split(":", 1)[0] for row in rows if row["outcome"] == "failed" for violation in row["violations"]
    )
    warning_counts = Counter(warning for row in rows for warning in row["warnings"])
    attempts = [int(row["attempts"]) for row in rows if row["outcome"] == "passed"]
    return {
        "total": len(rows),
        "passed": outcomes.get("passed", 0),
        "failed": outcomes.get("failed", 0),
        "clarification": outcomes.get("clarification", 0),
        "pass_rate": outcomes.get("passed", 0) / max(len(generated), 1),
        "first_attempt_passes": sum(1 for a in attempts if a == 1),
        "avg_attempts": sum(attempts) / max(len(attempts), 1),
        "violations": dict(violation_counts.most_common()),
        "warnings": dict(warning_counts.most_common()),
    }


def _fmt_pct(x: float) -> str:
    return f"{x * 100:.2f}%"


def build_markdown_report(input_path: str, metrics: dict[str, Any], rows: list[dict[str, Any]]) -> str:
    lines: list[str] = []
    lines.append("# Study Notes Checklist Report")
    lines.append("")
    lines.append(f"- input: `{input_path}`")
    lines.append(f"- total: `{metrics['total']}`")
    lines.append(f"- passed: `{metrics['passed']}`")
    lines.append(f"- failed: `{metrics['failed']}`")
    lines.append(f"- clarification: `{metrics['clarification']}`")
    lines.append(f"- pass rate: `{_fmt_pct(metrics['pass_rate'])}`")
    lines.append(f"- first-attempt passes: `{metrics['first_attempt_passes']}`")
    lines.append(f"- average attempts: `{metrics['avg_attempts']:.2f}`")
    lines.append("")
    lines.append("## Violations (failed documents)")
    lines.append("")
    lines.append("| check | count |")
    lines.append("|---|---:|")
    for check, count in metrics["violations"].items():
        lines.append(f"| {check} | {count} |")
    if not metrics["violations"]:
        lines.append("| none | 0 |")
    lines.append("")
    lines.append("## Warnings")
    lines.append("")
    if not metrics["warnings"]:
        lines.append("- none")
    for warning, count in metrics["warnings"].items():
        lines.append(f"- {warning}: {count}")
    lines.append("")
    lines.append("## Failed Requests")
    lines.append("")
    failed_rows = [r for r in rows if r["outcome"] != "passed"]
    if not failed_rows:
        lines.append("- none")
    else:
        for item in failed_rows[:30]:
            lines.append(
                f"- topic=`{item['topic']}` level=`{item['level']}` outcome=`{item['outcome']}` "
                f"violations=`{', '.join(item['violations'])}` note=`{item['note']}`"
            )
    lines.append("")
    return "\n".join(lines)


def write_report(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


async def main() -> int:
    args = parse_args()
    input_path = Path(args.input)
    samples = load_samples(input_path, args.limit)
    rows = await evaluate(samples)
    metrics = compute_metrics(rows)

    now = datetime.now().strftime("%Y%m%d_%H%M%S")
    md_path = Path(args.output_md) if args.output_md else Path(f"eval/reports/notes_eval_{now}.md")
    json_path = Path(args.output_json) if args.output_json else Path(f"eval/reports/notes_eval_{now}.json")

    write_report(md_path, build_markdown_report(str(input_path), metrics, rows))
    write_report(
        json_path,
        json.dumps(
            {
                "input": str(input_path),
                "metrics": metrics,
                "rows": rows,
            },
            ensure_ascii=False,
            indent=2,
        ),
    )

    print(
        f"[notes-eval] pass_rate={_fmt_pct(metrics['pass_rate'])} total={metrics['total']} "
        f"passed={metrics['passed']} failed={metrics['failed']}"
    )
    print(f"[notes-eval] markdown={md_path}")
    print(f"[notes-eval] json={json_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
