#!/usr/bin/env python3
"""
Smoke E2E test — two creators submit the same video, one verifies.

Runs against a live API with a clean database. Expected outcome: the
creator who verifies the matching account keeps the video, the other
submission is disqualified and a resubmission is rejected with 409.

Env vars:
  BASE_URL       (default http://localhost:8000)
  TIMEOUT_SEC    (default 60)   how long to wait for the worker
  POLL_INTERVAL  (default 2)
"""
from __future__ import annotations

import json
import os
import sys
import time
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000").rstrip("/")
TIMEOUT_SEC = int(os.environ.get("TIMEOUT_SEC", "60"))
POLL_INTERVAL = int(os.environ.get("POLL_INTERVAL", "2"))

SMOKE_TAG = f"smoke{int(time.time())}"
CONTEST_ID = int(time.time()) % 1_000_000
USER_A = f"{SMOKE_TAG}_a"
USER_B = f"{SMOKE_TAG}_b"
HANDLE = f"creator_{SMOKE_TAG}"
VIDEO_URL = f"https://www.tiktok.com/@{HANDLE}/video/{int(time.time())}"

# ── Helpers ──────────────────────────────────────────────────

class SmokeError(Exception):
    pass


def _req(method: str, path: str, user: str | None = None, body: dict | None = None, expect: int = 200) -> dict:
    url = f"{BASE_URL}{path}"
    headers = {"Content-Type": "application/json"}
    if user:
        headers["X-User-Id"] = user
    data = json.dumps(body).encode() if body else None
    req = Request(url, data=data, headers=headers, method=method)
    try:
        with urlopen(req, timeout=30) as resp:
            raw = resp.read().decode()
            return json.loads(raw) if raw else {}
    except HTTPError as e:
        raw = e.read().decode()[:500]
        if e.code == expect:
            return json.loads(raw) if raw else {}
        raise SmokeError(f"{method} {path} → {e.code}: {raw}")
    except URLError as e:
        raise SmokeError(f"{method} {path} → URLError: {e}")


def GET(path: str, user: str | None = None) -> dict:
    return _req("GET", path, user)


def POST(path: str, user: str | None = None, body: dict | None = None, expect: int = 200) -> dict:
    return _req("POST", path, user, body, expect)


def step(name: str):
    print(f"\n{'='*60}")
    print(f"  STEP: {name}")
    print(f"{'='*60}")


def ok(msg: str):
    print(f"  ✅ {msg}")


def fail(msg: str):
    print(f"  ❌ {msg}")
    raise SmokeError(msg)


def _submit(user: str, expect: int = 200) -> dict:
    return POST(
        f"/api/contests/{CONTEST_ID}/submissions",
        user,
        {"video_url": f"{VIDEO_URL}?is_from_webapp=1", "mp4_path": f"{SMOKE_TAG}/{user}.mp4"},
        expect=expect,
    )


# ── Steps ────────────────────────────────────────────────────

def step1_health():
    step("1. Health check")
    data = GET("/ping")
    if data.get("status") != "ok":
        fail(f"Unexpected /ping response: {data}")
    ok(f"API up (environment={data.get('environment')})")


def step2_connect_account() -> int:
    step("2. User A connects @" + HANDLE)
    account = POST("/api/accounts", USER_A, {"platform": "tiktok", "username": HANDLE})
    ok(f"SocialAccount #{account['id']} ({account['verification_status']})")
    return account["id"]


def step3_submissions() -> tuple[int, int]:
    step("3. Both users submit the video")
    sub_a = _submit(USER_A)
    ok(f"A → submission #{sub_a['id']} ({sub_a['mp4_ownership_status']})")
    sub_b = _submit(USER_B)
    ok(f"B → submission #{sub_b['id']} ({sub_b['mp4_ownership_status']})")
    if sub_b["mp4_ownership_status"] != "contested":
        fail(f"Expected B to be contested, got {sub_b['mp4_ownership_status']}")
    if sub_a["video_fingerprint"] != sub_b["video_fingerprint"]:
        fail("Fingerprints differ for the same video")
    return sub_a["id"], sub_b["id"]


def step4_verify(account_id: int):
    step("4. Mark A's account VERIFIED")
    result = POST(f"/api/accounts/{account_id}/verification", USER_A, {"status": "VERIFIED"})
    ok(f"Dispatched: {result['dispatched']} {result.get('celery_task_id') or ''}")


def step5_wait_resolution(sub_a: int, sub_b: int):
    step("5. Wait for ownership resolution")
    deadline = time.time() + TIMEOUT_SEC
    while time.time() < deadline:
        subs = {s["id"]: s for s in GET(f"/api/contests/{CONTEST_ID}/submissions")}
        a, b = subs.get(sub_a), subs.get(sub_b)
        if a and b and a["mp4_ownership_status"] == "verified" and b["is_disqualified"]:
            ok(f"A verified, B disqualified ({b['mp4_ownership_reason']})")
            return
        print(f"  ⏳ A={a and a['mp4_ownership_status']} B={b and b['mp4_ownership_status']}")
        time.sleep(POLL_INTERVAL)
    fail(f"Resolution did not finish within {TIMEOUT_SEC}s")


def step6_resubmit_rejected():
    step("6. B resubmits to a new contest")
    global CONTEST_ID
    CONTEST_ID += 1
    data = _submit(USER_B, expect=409)
    ok(f"Rejected: {data.get('detail')}")


# ── Main ─────────────────────────────────────────────────────

def main():
    print(f"\n🔬 Ownership smoke test — {BASE_URL}")
    print(f"   contest={CONTEST_ID}  url={VIDEO_URL}  TIMEOUT={TIMEOUT_SEC}s\n")

    try:
        step1_health()
        account_id = step2_connect_account()
        sub_a, sub_b = step3_submissions()
        step4_verify(account_id)
        step5_wait_resolution(sub_a, sub_b)
        step6_resubmit_rejected()

        print(f"\n{'='*60}")
        print("  ✅ PASS")
        print(f"{'='*60}\n")

    except SmokeError as e:
        print(f"\n{'='*60}")
        print(f"  ❌ FAIL: {e}")
        print(f"{'='*60}\n")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\n  ⏹ Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
