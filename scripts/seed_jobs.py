"""
Seed script — submits a variety of sample generation jobs for demo purposes.

Usage:
    python -m scripts.seed_jobs

This creates, as two different users:
- 4 jobs covering every style and format
- 1 job that is cancelled straight away (shows up FAILED / CANCELLED)

Run the worker with SIMULATED_TRANSIENT_FAILURE_RATE=0.3 to watch jobs
retry with backoff, or SIMULATED_PERMANENT_FAILURE_RATE=1.0 to fill the
dead-letter list.
"""

import httpx

BASE_URL = "http://localhost:8000"


def seed():
    client = httpx.Client(base_url=BASE_URL, timeout=10.0)

    jobs = [
        ("user-1", {
            "prompt": "Ceramic coffee mug on a marble counter, soft morning light",
            "style": "REALISTIC",
            "format": "SQUARE",
        }),
        ("user-1", {
            "prompt": "Hand-knitted wool scarf draped over a wooden chair",
            "style": "ARTISTIC",
            "format": "PORTRAIT",
        }),
        ("user-2", {
            "prompt": "Bamboo toothbrush set with a bright summer background",
            "style": "CARTOON",
            "format": "LANDSCAPE",
        }),
        ("user-2", {
            "prompt": "Matte black water bottle, studio lighting, no props",
            "style": "MINIMALIST",
        }),
    ]

    print(f"Submitting {len(jobs)} jobs to {BASE_URL}...\n")

    for owner, job in jobs:
        resp = client.post("/jobs/", json=job, headers={"X-Caller-Id": owner})
        resp.raise_for_status()
        data = resp.json()
        print(f"  [{data['state']}] {owner}: {job['prompt'][:40]}... (id: {data['job_id'][:8]}...)")

    resp = client.post(
        "/jobs/",
        json={"prompt": "Abstract swirl poster for a candle brand", "style": "ABSTRACT"},
        headers={"X-Caller-Id": "user-1"},
    )
    resp.raise_for_status()
    job_id = resp.json()["job_id"]
    cancelled = client.delete(f"/jobs/{job_id}", headers={"X-Caller-Id": "user-1"}).json()
    print(f"  [{cancelled['state']}] user-1: cancelled job {job_id[:8]}...")

    print("\nDone! Jobs are now flowing through the scheduler.")
    print("Check status:  curl -H 'X-Caller-Id: user-1' http://localhost:8000/jobs/stats")
    print("List jobs:     curl -H 'X-Caller-Id: user-1' http://localhost:8000/jobs/")


if __name__ == "__main__":
    seed()
