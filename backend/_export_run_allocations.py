import argparse
import csv
import json
import os
from datetime import datetime
from typing import Any, Dict, List

import httpx


BASE_URL = os.environ.get("SEATING_API_BASE_URL", "http://localhost:8000")
TOKEN = os.environ.get("SEATING_API_TOKEN", "")

CSV_COLUMNS = [
    "hall_name",
    "seat_number",
    "row",
    "column",
    "registration_number",
    "full_name",
    "class_level",
    "student_id",
    "hall_id",
    "id",
    "run_id",
]


def _client() -> httpx.Client:
    headers = {"Authorization": f"Bearer {TOKEN}"} if TOKEN else {}
    return httpx.Client(base_url=BASE_URL, headers=headers, follow_redirects=True, timeout=30.0)


def _latest_completed_run(client: httpx.Client, exam_id: str) -> Dict[str, Any] | None:
    resp = client.get(f"/api/allocations/exams/{exam_id}/runs")
    resp.raise_for_status()
    runs = resp.json().get("allocations") or []
    # History is newest first.
    for run in runs:
        if run.get("status") == "completed":
            return run
    return None


def _get_run(client: httpx.Client, run_id: str) -> Dict[str, Any]:
    resp = client.get(f"/api/allocations/runs/{run_id}")
    resp.raise_for_status()
    run = resp.json().get("run")
    if not isinstance(run, dict):
        raise RuntimeError("Unexpected run response format")
    return run


def _export_json(run: Dict[str, Any], path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(run, f, ensure_ascii=False, indent=2)


def _export_csv(allocations: List[Dict[str, Any]], path: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for a in allocations:
            writer.writerow(a)


def main() -> None:
    parser = argparse.ArgumentParser(description="Export a run's seat allocations as JSON and CSV")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--run-id", help="Allocation run to export")
    group.add_argument("--exam-id", help="Export the newest completed run of this exam")
    parser.add_argument("--out-dir", default=os.path.join(os.path.dirname(__file__), "outputs"))
    args = parser.parse_args()

    os.makedirs(args.out_dir, exist_ok=True)
    with _client() as client:
        run_id = args.run_id
        if run_id is None:
            latest = _latest_completed_run(client, args.exam_id)
            if latest is None:
                print("No completed runs found to export.")
                return
            run_id = latest["id"]

        run = _get_run(client, run_id)
        if run.get("status") != "completed":
            print(f"Run {run_id} is {run.get('status')}; nothing to export.")
            return

        allocations = run.get("allocations") or []
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        base = os.path.join(args.out_dir, f"run_{run_id}_{ts}")
        json_path = f"{base}_allocations.json"
        csv_path = f"{base}_allocations.csv"
        _export_json(run, json_path)
        _export_csv(allocations, csv_path)
        print({
            "run_id": run_id,
            "allocations_count": len(allocations),
            "unresolved_conflicts": (run.get("metadata") or {}).get("unresolved_conflicts"),
            "json_path": json_path,
            "csv_path": csv_path,
        })


if __name__ == "__main__":
    main()
