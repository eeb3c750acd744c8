#!/usr/bin/env python3
"""Unified entry point for Goal Reminder Service.

Runs the REST API, the MCP server and (when enabled) the notification
worker as child processes. If any child exits, the others are stopped
and this process exits with a non-zero status.
"""

import os
import signal
import subprocess
import sys
import time
from typing import Dict, List, Tuple

from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'main.log')

PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
STOP_TIMEOUT = 5
MONITOR_INTERVAL = 5


def planned_services() -> List[Tuple[str, str, Dict[str, str]]]:
    """(name, script, extra environment) for every child to start."""
    services = [
        ("API server", "api_server.py", {}),
        ("MCP server", "mcp_server.py", {"MCP_TRANSPORT": "sse"}),
    ]
    if settings.WORKER_ENABLED:
        services.append(("Notification worker", "background_worker.py", {}))
    return services


class Supervisor:
    """Owns the child processes and their shutdown."""

    def __init__(self):
        self.children: List[Tuple[str, subprocess.Popen]] = []
        self.stopping = False

    def start(self, name: str, script: str, extra_env: Dict[str, str]) -> None:
        env = dict(os.environ, **extra_env)
        # Children share this terminal; their own loggers write the files
        process = subprocess.Popen([sys.executable, script], cwd=PROJECT_DIR, env=env)
        self.children.append((name, process))
        logger.info(f"{name} started (PID: {process.pid})")

    def stop(self) -> None:
        logger.info("Stopping all services...")
        for _, process in self.children:
            if process.poll() is None:
                process.terminate()

        for name, process in self.children:
            try:
                process.wait(timeout=STOP_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning(f"{name} did not stop within {STOP_TIMEOUT}s, killing PID {process.pid}")
                process.kill()
                process.wait()
        logger.info("All services stopped")

    def first_exited(self):
        for name, process in self.children:
            if process.poll() is not None:
                return name, process.returncode
        return None

    def request_stop(self, signum, frame):
        if self.stopping:
            logger.warning("Second signal received, exiting immediately")
            sys.exit(1)
        logger.info(f"Received signal {signum}, shutting down...")
        self.stopping = True


def main() -> int:
    supervisor = Supervisor()
    signal.signal(signal.SIGTERM, supervisor.request_stop)
    signal.signal(signal.SIGINT, supervisor.request_stop)

    logger.info("=" * 60)
    logger.info("Goal Reminder Service - Unified Startup")
    logger.info("=" * 60)

    try:
        for name, script, extra_env in planned_services():
            supervisor.start(name, script, extra_env)
            time.sleep(2)
    except OSError as e:
        logger.error(f"Could not start services: {e}")
        supervisor.stop()
        return 1

    logger.info(f"  - API docs: http://127.0.0.1:{settings.API_PORT}/docs")
    logger.info(f"  - MCP SSE: http://{settings.MCP_HOST}:{settings.MCP_PORT}/sse")
    if settings.WORKER_ENABLED:
        logger.info(f"  - Notifications delivered to: {settings.NOTIFICATION_WEBHOOK_URL}")

    exit_code = 0
    while not supervisor.stopping:
        exited = supervisor.first_exited()
        if exited:
            name, returncode = exited
            logger.error(f"{name} exited unexpectedly with code {returncode}")
            exit_code = 1
            break
        time.sleep(MONITOR_INTERVAL)

    supervisor.stop()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
