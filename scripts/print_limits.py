#!/usr/bin/env python3
"""Print upload limit and per-call retry policies (from config). Run from repo root: python scripts/print_limits.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from syncnotes.core.config import settings
from syncnotes.main import RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
from syncnotes.utils.retry import CHAT_POLICY, MIND_MAP_POLICY, TRANSCRIPTION_POLICY


def _worst_case_seconds(policy) -> float:
    """Deadline on every attempt plus every backoff in between."""
    backoffs = sum(policy.backoff_after(a) for a in range(1, policy.max_attempts))
    return policy.deadline_seconds * policy.max_attempts + backoffs


def main():
    """Print MAX_AUDIO_KB, each call's deadline / retries / worst-case wait, and the rate limit."""
    print("Analysis & API limits")
    print("---------------------")
    print(f"  MAX_AUDIO_KB          = {settings.max_audio_kb} KB (max size per uploaded recording)")
    for name, policy in (
        ("transcription", TRANSCRIPTION_POLICY),
        ("mind_map", MIND_MAP_POLICY),
        ("chat", CHAT_POLICY),
    ):
        print(
            f"  {name:<21} = {policy.deadline_seconds:g}s deadline, {policy.max_retries} retries, "
            f"worst case {_worst_case_seconds(policy):g}s"
        )
    print(f"  Rate limit            = {RATE_LIMIT_REQUESTS} requests / {RATE_LIMIT_WINDOW_SECONDS} s (per client IP)")
    print("")
    print("Env: MAX_AUDIO_KB, *_TIMEOUT_SECONDS, *_RETRIES, RETRY_BACKOFF_SECONDS (see .env.example)")


if __name__ == "__main__":
    main()
