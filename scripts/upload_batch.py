#!/usr/bin/env python3
"""
Upload an extracted question batch (questions + solutions + answer key) to the Exam Bank service.

Requirements:
  pip install requests

The batch file is the JSON produced by the extraction step:
  {"questions": [...], "solutions": [...], "answerKey": [...]}
Solutions and answer keys may also be passed as separate files.

Env vars (loaded from .env if present):
  EXAMBANK_BASE_URL  -> Base URL for the service (default http://localhost:8000/api/v1)

Usage:
  python scripts/upload_batch.py --exam "JEE Main" --subject physics --topic kinematics batch.json
"""

import argparse
import json
import os
import sys
from typing import Any, Dict, List, Optional

import requests

BASE_URL_DEFAULT = "http://localhost:8000/api/v1"


def load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_env_from_file(path: str = ".env") -> None:
    """Load KEY=VALUE pairs from a .env file if present and not already set."""

    if not os.path.exists(path):
        return
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = val


def build_payload(
    batch: Any,
    exam: str,
    subject_id: str,
    topic_id: str,
    subject_name: Optional[str] = None,
    topic_name: Optional[str] = None,
    solutions: Optional[List[Dict[str, Any]]] = None,
    answer_key: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """A bare list is treated as the questions array."""

    if isinstance(batch, list):
        batch = {"questions": batch}
    return {
        "examType": exam,
        "subjectId": subject_id,
        "subjectName": subject_name or subject_id,
        "topicId": topic_id,
        "topicName": topic_name or topic_id,
        "questions": batch.get("questions", []),
        "solutions": solutions if solutions is not None else batch.get("solutions", []),
        "answerKey": answer_key if answer_key is not None else batch.get("answerKey", batch.get("answer_key", [])),
    }


def post_batch(payload: Dict[str, Any], base_url: str) -> Dict[str, Any]:
    resp = requests.post(f"{base_url}/questions/ingest", json=payload, timeout=60)
    if resp.status_code == 409:
        body = resp.json()
        raise RuntimeError(
            f"Duplicate questions at batch indexes {body.get('duplicateIndexes')}; nothing was ingested"
        )
    if not resp.ok:
        raise RuntimeError(f"Upload failed {resp.status_code}: {resp.text}")
    return resp.json()


def main() -> None:
    parser = argparse.ArgumentParser(description="Upload an extracted question batch to the Exam Bank service.")
    parser.add_argument("batch", help="JSON file with questions (and optionally solutions/answerKey)")
    parser.add_argument("--exam", required=True, help="Exam name, e.g. 'JEE Main' or 'NEET'")
    parser.add_argument("--subject", required=True, help="Subject id")
    parser.add_argument("--subject-name", help="Subject display name (defaults to the id)")
    parser.add_argument("--topic", required=True, help="Topic (chapter) id")
    parser.add_argument("--topic-name", help="Topic display name (defaults to the id)")
    parser.add_argument("--solutions", help="Separate JSON file with solutions")
    parser.add_argument("--answer-key", dest="answer_key", help="Separate JSON file with the answer key")
    parser.add_argument("--base-url", dest="base_url", help="Override EXAMBANK_BASE_URL")
    args = parser.parse_args()

    load_env_from_file()
    base_url = args.base_url or os.getenv("EXAMBANK_BASE_URL", BASE_URL_DEFAULT)

    payload = build_payload(
        load_json(args.batch),
        exam=args.exam,
        subject_id=args.subject,
        topic_id=args.topic,
        subject_name=args.subject_name,
        topic_name=args.topic_name,
        solutions=load_json(args.solutions) if args.solutions else None,
        answer_key=load_json(args.answer_key) if args.answer_key else None,
    )
    if not payload["questions"]:
        sys.stderr.write("Batch contains no questions\n")
        sys.exit(1)

    try:
        result = post_batch(payload, base_url)
    except (RuntimeError, requests.RequestException) as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"Done. Ingested {result['count']} questions into {result['examType']} ({result['subtopicsCount']} subtopics).")


if __name__ == "__main__":
    main()
