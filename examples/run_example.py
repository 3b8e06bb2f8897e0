#!/usr/bin/env python3
"""Example runner for the LLM switchboard.

Builds a dispatch engine from the environment (or a YAML config passed as
the first argument) and sends a handful of prompts through it to show
auto-routing, explicit dispatch and comparison mode.

Usage:
    OLLAMA_BASE_URL=http://localhost:11434 GROQ_API_KEY=... \\
        python examples/run_example.py [config.yaml]

The script:
1. Lists every backend and whether it is configured
2. Auto-routes a set of prompts and prints each routing decision
3. Runs one comparison across the available backends
4. Prints per-(backend, model) statistics and aggregate metrics
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from llm_switchboard.config import SwitchboardConfig
from llm_switchboard.engine import DispatchEngine
from llm_switchboard.errors import SwitchboardError
from llm_switchboard.observability.logging import setup_logging
from llm_switchboard.router.types import CompletionRequest, FileAttachment, RequestOptions

PROMPTS = [
    {
        "name": "Definition lookup",
        "request": CompletionRequest(
            prompt="What is a Python decorator? One sentence.",
            options=RequestOptions(max_tokens=80),
        ),
    },
    {
        "name": "Code request",
        "request": CompletionRequest(
            prompt="Write code for a function that reverses a linked list.",
            options=RequestOptions(max_tokens=300),
        ),
    },
    {
        "name": "Document question",
        "request": CompletionRequest(
            prompt="Summarize the attached report in three bullet points.",
            files=(FileAttachment(
                id="report", name="q3-report.txt", kind="text",
                extracted_text="Revenue grew 12%. Churn fell to 3%. Hiring paused.",
            ),),
            options=RequestOptions(max_tokens=150),
        ),
    },
    {
        "name": "With system prompt",
        "request": CompletionRequest(
            prompt="ping",
            options=RequestOptions(
                max_tokens=10, system_prompt="You only respond with the word 'pong'."
            ),
        ),
    },
]

RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
GREEN = "\033[92m"
RED = "\033[91m"


def _load_config() -> SwitchboardConfig:
    if len(sys.argv) > 1:
        return SwitchboardConfig.from_yaml(sys.argv[1])
    return SwitchboardConfig.from_env()


async def run_examples():
    """Run all example prompts through the engine."""
    print(f"\n{BOLD}{'='*70}")
    print("  LLM Switchboard: Example Runner")
    print(f"{'='*70}{RESET}\n")

    config = _load_config()
    setup_logging(level="WARNING", fmt="text")  # Quiet for examples
    engine = DispatchEngine.from_config(config)

    print("  Backends:")
    for status in engine.list_backends():
        state = f"{GREEN}available{RESET}" if status.available else f"{DIM}not configured{RESET}"
        print(f"    {status.profile.name:20s} {state}")
    print(f"\n{'-'*70}\n")

    if not engine.registry.available_profiles():
        print(f"  {RED}No backend credentials found; set e.g. OLLAMA_BASE_URL.{RESET}\n")
        await engine.close()
        return

    total_start = time.monotonic()
    for i, item in enumerate(PROMPTS, 1):
        print(f"  [{i}/{len(PROMPTS)}] {BOLD}{item['name']}{RESET}")
        try:
            response = await engine.dispatch(item["request"])
        except SwitchboardError as e:
            print(f"       {RED}Failed: {e.error_code}: {e}{RESET}\n")
            continue

        routing = response.routing
        preview = response.content[:80].replace("\n", " ")
        print(f"       Routed:   {response.backend}/{response.model} "
              f"(confidence {routing.confidence:.2f})")
        print(f"       {DIM}{routing.reasoning}{RESET}")
        print(f"       Latency:  {response.performance.latency_ms:.0f}ms  "
              f"Tokens: {response.usage.total_tokens}  Cost: ${response.usage.cost:.6f}")
        if preview:
            print(f"       Response: {DIM}\"{preview}...\"{RESET}")
        print()

    # ── Comparison ───────────────────────────────────────────────
    targets = [
        (p.name, p.default_model) for p in engine.registry.available_profiles()
    ]
    print(f"  {BOLD}Comparison across {len(targets)} backend(s){RESET}")
    try:
        responses = await engine.compare(
            CompletionRequest(prompt="Name one prime number above 100."),
            targets=targets,
        )
        for r in responses:
            print(f"    {r.backend + '/' + r.model:45s} "
                  f"{r.performance.latency_ms:6.0f}ms  {r.content[:40]!r}")
    except SwitchboardError as e:
        print(f"    {RED}{e}{RESET}")

    total_elapsed = (time.monotonic() - total_start) * 1000

    # ── Summary ──────────────────────────────────────────────────
    print(f"\n{'='*70}")
    print(f"  {BOLD}RESULTS SUMMARY{RESET}")
    print(f"{'='*70}\n")

    metrics = engine.metrics_summary()
    print(f"  Dispatches:      {metrics['total_events']}")
    print(f"  Total time:      {total_elapsed:.0f}ms")
    if metrics["total_events"]:
        print(f"  Success rate:    {metrics['success_rate']*100:.0f}%")
        print(f"  Avg latency:     {metrics['latency']['mean_ms']:.0f}ms")
        print(f"  Total cost:      ${metrics['cost']['total']:.6f}")

    print("\n  Backend statistics:")
    for s in engine.list_stats():
        print(f"    {s.backend + '/' + s.model:45s} requests={s.total_requests} "
              f"avg_latency={s.average_latency_ms:.0f}ms")

    print(f"\n{'='*70}\n")

    await engine.close()


if __name__ == "__main__":
    asyncio.run(run_examples())
