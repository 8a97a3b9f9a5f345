"""Lightweight routing and answer evaluation runner.

Usage:
    python tools/offline_eval.py --dataset eval_samples.json --output results.csv

The dataset file should contain an array of objects:
[
  {
    "sessionId": "eval-1",
    "question": "How many casual leaves are remaining for Hamid Khan?",
    "expected_intent": "DATABASE_QUERY",
    "expected_keywords": ["casual", "remaining"]
  }
]
"""
from __future__ import annotations

import argparse
import csv
import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from fastapi import FastAPI
from fastapi.testclient import TestClient

from hr_assistant.main import app as service_app


def keyword_precision(answer: str, expected_keywords: Iterable[str]) -> float:
    keywords = list(expected_keywords)
    if not keywords:
        return 1.0
    present = sum(1 for keyword in keywords if keyword.lower() in answer.lower())
    return present / len(keywords)


def evaluate(client: TestClient, samples: List[Dict[str, object]]) -> List[Dict[str, object]]:
    rows: List[Dict[str, object]] = []
    for item in samples:
        question = item.get("question")
        session_id = item.get("sessionId")
        expected_intent = item.get("expected_intent")
        expected_keywords = item.get("expected_keywords", [])

        body: Dict[str, object] = {"question": question}
        if session_id:
            body["sessionId"] = session_id
        response = client.post("/chat", json=body)
        payload = response.json()
        answer = payload.get("answer") or payload.get("error", "")
        intent = payload.get("intent")

        rows.append(
            {
                "session_id": session_id or "",
                "question": question,
                "status_code": response.status_code,
                "intent": intent or "",
                "source": payload.get("source", ""),
                "intent_match": "" if not expected_intent else intent == expected_intent,
                "keyword_precision": keyword_precision(answer, expected_keywords),
                "answer": answer,
            }
        )
    return rows


def write_results(rows: List[Dict[str, object]], output_path: Path) -> None:
    if not rows:
        return
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        writer.writerows(rows)


def run_evaluation(dataset_path: Path, output_path: Path, app: Optional[FastAPI] = None) -> List[Dict[str, object]]:
    samples: List[Dict[str, object]] = json.loads(dataset_path.read_text(encoding="utf-8"))
    with TestClient(app or service_app) as client:
        rows = evaluate(client, samples)
    write_results(rows, output_path)
    return rows


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run offline routing evaluation.")
    parser.add_argument("--dataset", type=Path, required=True, help="Path to evaluation samples JSON.")
    parser.add_argument("--output", type=Path, default=Path("eval_results.csv"), help="Where to store results CSV.")
    args = parser.parse_args()

    run_evaluation(dataset_path=args.dataset, output_path=args.output)
    print(f"Evaluation complete. Results saved to {args.output}")
