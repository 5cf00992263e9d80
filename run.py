#!/usr/bin/env python3
"""
Football IQ launcher (FastAPI + SQLite)

Creates .venv when missing, installs the project into it, then starts the API
server, the scheduler runner, or both.

Usage:
  python run.py                        # API server at http://127.0.0.1:8000
  python run.py --scheduler            # scheduler runner only
  python run.py --both                 # server + scheduler
  python run.py --seed 2025-06-01      # load the puzzle pack for a date and exit
  python run.py --no-install --port 9000
"""

from __future__ import annotations

import argparse
import platform
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
VENV_DIR = PROJECT_ROOT / ".venv"


def venv_python_path() -> Path:
    if platform.system().lower().startswith("win"):
        return VENV_DIR / "Scripts" / "python.exe"
    return VENV_DIR / "bin" / "python"


def run(cmd: list[str], check: bool = True) -> int:
    print("\n> " + " ".join(cmd))
    return subprocess.run(cmd, cwd=str(PROJECT_ROOT), check=check).returncode


def ensure_venv() -> Path:
    py = venv_python_path()
    if not py.exists():
        print(f"Creating virtual environment at: {VENV_DIR}")
        run([sys.executable, "-m", "venv", str(VENV_DIR)])
    if not py.exists():
        raise RuntimeError(f"Virtualenv created but python not found at: {py}")
    return py


def install(venv_py: Path) -> None:
    if not (PROJECT_ROOT / "pyproject.toml").exists():
        raise FileNotFoundError(f"Missing pyproject.toml in {PROJECT_ROOT}")
    run([str(venv_py), "-m", "pip", "install", "--upgrade", "pip"])
    run([str(venv_py), "-m", "pip", "install", "-e", str(PROJECT_ROOT)])


def seed(venv_py: Path, for_date: str) -> int:
    code = (
        "from footiq import db, content; db.init_db(); "
        f"print(content.seed_from_pack({for_date!r}))"
    )
    return run([str(venv_py), "-c", code], check=False)


def main() -> int:
    parser = argparse.ArgumentParser(prog="Football IQ Launcher")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--scheduler", action="store_true", help="Run only the scheduler runner")
    mode.add_argument("--both", action="store_true", help="Run server + scheduler runner")
    mode.add_argument("--seed", metavar="DATE", help="Seed reference data and puzzles for DATE, then exit")
    parser.add_argument("--no-install", action="store_true", help="Skip pip install (assumes .venv is ready)")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--no-reload", action="store_true", help="Disable uvicorn --reload")
    args = parser.parse_args()

    venv_py = ensure_venv()
    if not args.no_install:
        install(venv_py)

    if args.seed:
        return seed(venv_py, args.seed)

    scheduler = [str(venv_py), "-m", "footiq.jobs.schedule_runner"]
    if args.scheduler:
        return run(scheduler, check=False)

    sched_proc: subprocess.Popen | None = None
    if args.both:
        print("Starting scheduler runner in background...")
        sched_proc = subprocess.Popen(scheduler, cwd=str(PROJECT_ROOT))

    server = [str(venv_py), "-m", "uvicorn", "footiq.main:app", "--host", args.host, "--port", str(args.port)]
    if not args.no_reload:
        server.append("--reload")
    try:
        return run(server, check=False)
    finally:
        if sched_proc is not None and sched_proc.poll() is None:
            print("\nStopping scheduler runner...")
            sched_proc.terminate()


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nStopped.")
