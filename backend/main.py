"""Local stand-in for the TITAN scanning API.

Serves the same HTTP contract as the real backend with deterministic canned
results, so the CI tool can be exercised end to end:

    uvicorn backend.main:app --port 8000
    API_BASE_URL=http://localhost:8000 REPOSITORY_URL=https://github.com/acme/demo titanscan scan
"""

from __future__ import annotations

import hashlib
import json
from typing import Dict, List
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

app = FastAPI(title="TITAN Sandbox Scanner", version="0.1.0")

SAMPLE_UNITS = [
    ("src/auth/login.py", "check_password", 12, 40, "def check_password(user, pw):\n    return pw == user.password"),
    ("src/auth/session.py", "load_session", 8, 30, "def load_session(token):\n    return pickle.loads(token)"),
    ("src/api/users.py", "get_user", 20, 35, "def get_user(uid):\n    return db.query(f'SELECT * FROM users WHERE id={uid}')"),
    ("src/api/files.py", "download", 5, 22, "def download(name):\n    return open('/data/' + name).read()"),
    ("src/util/strings.py", "slugify", 1, 9, "def slugify(s):\n    return s.lower().replace(' ', '-')"),
    ("src/util/dates.py", "parse_date", 3, 18, "def parse_date(s):\n    return datetime.strptime(s, '%Y-%m-%d')"),
]

VULNERABLE = {
    "load_session": ("CRITICAL", "Insecure Deserialization", "CWE-502"),
    "get_user": ("HIGH", "SQL Injection", "CWE-89"),
    "download": ("HIGH", "Path Traversal", "CWE-22"),
}

# group_id -> {"url": str, "polls": int}
GROUPS: Dict[str, dict] = {}
# job_id -> repository url
JOBS: Dict[str, str] = {}


class InitiateRequest(BaseModel):
    url: str


class ChatRequest(BaseModel):
    content: str


def _score(url: str, name: str) -> float:
    digest = hashlib.sha256(f"{url}:{name}".encode("utf-8")).hexdigest()
    return round(0.5 + int(digest[:4], 16) / 0xFFFF / 2, 4)


def _job_entry(url: str, unit: tuple, failed: bool = False) -> dict:
    path, name, start, end, code = unit
    entry = {
        "status": "failed" if failed else "completed",
        "input": {"filePath": path, "functionName": name, "startLine": start, "endLine": end, "code": code},
    }
    if failed:
        entry["result"] = None
        return entry
    severity, vuln_type, _ = VULNERABLE.get(name, ("LOW", None, None))
    is_vulnerable = name in VULNERABLE
    score = _score(url, name)
    entry["result"] = {
        "is_vulnerable": is_vulnerable,
        "score": score,
        "confidence_percent": f"{round(score * 100)}%",
        "severity": severity if is_vulnerable else "LOW",
        "inference_time_seconds": 0.42,
        "code_length": len(code),
        "analysis": f"{vuln_type} detected in {name}." if is_vulnerable else "No issues found.",
        "prediction": "vulnerable" if is_vulnerable else "safe",
        "threshold": 0.5,
    }
    return entry


def _stream_finding(url: str, unit: tuple) -> dict:
    path, name, start, end, _ = unit
    severity, vuln_type, cwe = VULNERABLE.get(name, ("LOW", None, None))
    return {
        "finding_id": hashlib.sha1(f"{url}:{path}:{name}".encode("utf-8")).hexdigest()[:12],
        "file_path": path,
        "function_name": name,
        "start_line": start,
        "end_line": end,
        "prediction": 1 if name in VULNERABLE else 0,
        "score": _score(url, name),
        "severity": severity,
        "vuln_type": vuln_type,
        "cwe_id": cwe,
        "message": f"{vuln_type} detected in {name}." if vuln_type else "No issues found.",
    }


@app.get("/")
def health():
    return {"status": "ok"}


@app.post("/initiate")
def initiate(req: InitiateRequest):
    group_id = f"group-{uuid4().hex[:12]}"
    GROUPS[group_id] = {"url": req.url, "polls": 0}
    return {"groupId": group_id}


@app.get("/parser/groups/{group_id}/results")
def group_results(group_id: str):
    group = GROUPS.get(group_id)
    if group is None:
        raise HTTPException(status_code=404, detail="Group not found")
    group["polls"] += 1
    total = len(SAMPLE_UNITS)
    processed = min(group["polls"] * 2, total)
    # The last unit always fails so reports show the failed-unit path.
    jobs = [_job_entry(group["url"], unit, failed=(i == total - 1)) for i, unit in enumerate(SAMPLE_UNITS[:processed])]
    failed = sum(1 for j in jobs if j["status"] == "failed")
    return {
        "summary": {"completed": processed - failed, "failed": failed, "total": total},
        "jobs": jobs,
    }


def _events(url: str, job_id: str, inline: bool):
    def event(payload: dict) -> str:
        return f"data: {json.dumps(payload)}\n\n"

    yield event({"message": f"Cloning {url}"})
    yield event({"message": f"Extracted {len(SAMPLE_UNITS)} functions"})
    if inline:
        batch: List[dict] = []
        for unit in SAMPLE_UNITS:
            batch.append(_stream_finding(url, unit))
            if len(batch) == 3:
                yield event({"findings": batch, "count": len(batch), "job_id": job_id})
                batch = []
        if batch:
            yield event({"findings": batch, "count": len(batch), "job_id": job_id})
    yield event({"status": "completed", "job_id": job_id})


@app.post("/chat")
def chat(req: ChatRequest, stream: bool = Query(False), inline: bool = Query(True)):
    if not stream:
        raise HTTPException(status_code=400, detail="Only stream=true is supported")
    job_id = f"job-{uuid4().hex[:12]}"
    JOBS[job_id] = req.content
    return StreamingResponse(_events(req.content, job_id, inline), media_type="text/event-stream")


@app.get("/results/{job_id}")
def results(job_id: str):
    url = JOBS.get(job_id)
    if url is None:
        raise HTTPException(status_code=404, detail="Job not found")
    findings = [_stream_finding(url, unit) for unit in SAMPLE_UNITS]
    return {"count": len(findings), "findings": findings}
