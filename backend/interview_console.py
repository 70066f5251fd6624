"""
Run one interview from the terminal in text mode.

    python interview_console.py --backend http://127.0.0.1:8000

Type answers at the prompt. `/pause`, `/resume` and `/stop` control the
session. When the interview ends the transcript is written as CSV and
posted to the finalize endpoint.
"""

import argparse
import asyncio
import json
import logging
import sys
import threading
from pathlib import Path

import httpx

from app.realtime.channel import open_realtime_channel
from app.session.controller import SessionProtocolController

logger = logging.getLogger("interview_console")

POLL_INTERVAL_SEC = 0.2


async def _print_new_turns(controller: SessionProtocolController, seen: set[str]) -> None:
    while True:
        for turn in controller.transcript.downstream_snapshot():
            if turn.id in seen:
                continue
            seen.add(turn.id)
            if turn.role.value == "interviewer":
                print(f"\n[{turn.timestamp}] Interviewer: {turn.text}\n> ", end="", flush=True)
        await asyncio.sleep(POLL_INTERVAL_SEC)


def _start_stdin_reader(lines: asyncio.Queue, readline=sys.stdin.readline) -> threading.Thread:
    """Pump stdin lines into `lines` from a daemon thread; "" marks EOF."""
    loop = asyncio.get_running_loop()

    def _pump() -> None:
        while True:
            line = readline()
            loop.call_soon_threadsafe(lines.put_nowait, line)
            if not line:
                return

    thread = threading.Thread(target=_pump, name="stdin-reader", daemon=True)
    thread.start()
    return thread


async def _read_input(controller: SessionProtocolController, lines: asyncio.Queue) -> None:
    # Poll so a closing line from the interviewer ends input without a keypress.
    while not controller.interview_ended:
        try:
            line = await asyncio.wait_for(lines.get(), timeout=POLL_INTERVAL_SEC)
        except asyncio.TimeoutError:
            continue
        if not line:
            break
        command = line.strip()
        if command == "/stop":
            break
        if command == "/pause":
            controller.pause()
        elif command == "/resume":
            controller.resume()
        elif command:
            controller.submit_text(command)


async def _finalize(backend: str, interview_id: str, transcripts: list[dict]) -> None:
    url = f"{backend.rstrip('/')}/api/interviews/{interview_id}/finalize"
    async with httpx.AsyncClient(timeout=180.0) as client:
        response = await client.post(url, json={"transcripts": transcripts})
    print(f"finalize -> {response.status_code}")
    print(json.dumps(response.json(), indent=2, ensure_ascii=False))


async def run(backend: str, out_dir: Path) -> int:
    controller = SessionProtocolController(channel_factory=open_realtime_channel)
    controller.add_listener(lambda name, detail: logger.info("notice=%s detail=%s", name, detail))

    if not await controller.start():
        print(f"could not connect: {controller.last_error}")
        return 1
    controller.switch_to_text()

    seen: set[str] = set()
    printer = controller.create_task(_print_new_turns(controller, seen))
    try:
        lines: asyncio.Queue = asyncio.Queue()
        _start_stdin_reader(lines)
        await _read_input(controller, lines)
    finally:
        printer.cancel()
        interview_id = controller.interview_id or "interview"
        await controller.aclose()

    out_dir.mkdir(parents=True, exist_ok=True)
    csv_path = out_dir / f"{interview_id}.csv"
    csv_path.write_text(controller.transcript.to_csv(interview_id), encoding="utf-8")
    print(f"transcript written to {csv_path}")

    transcripts = controller.transcript.snapshot_payload()
    if not transcripts:
        print("no final turns; skipping finalize")
        return 0
    await _finalize(backend, interview_id, transcripts)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Text-mode interview console")
    parser.add_argument("--backend", default="http://127.0.0.1:8000")
    parser.add_argument("--out-dir", default="data/transcripts")
    args = parser.parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        level=logging.INFO,
    )
    return asyncio.run(run(args.backend, Path(args.out_dir)))


if __name__ == "__main__":
    raise SystemExit(main())
