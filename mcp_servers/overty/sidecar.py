from __future__ import annotations

import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from .config import OvertyConfig

logger = logging.getLogger("mcp.overty.sidecar")

NODE_EXECUTABLES = {"node", "node.exe", "nodejs"}
STOP_GRACE_SECONDS = 2.0


@dataclass
class SidecarResult:
    command: list[str]
    started: bool
    message: str


def is_node_executable(exec_path: str) -> bool:
    return Path((exec_path or "").strip().lower()).name in NODE_EXECUTABLES


class SidecarSupervisor:
    """Starts and stops the optional auxiliary MCP process next to this server."""

    def __init__(self, config: OvertyConfig | None = None) -> None:
        self.config = config or OvertyConfig.from_env()
        self.process: subprocess.Popen | None = None
        self._stderr_thread: threading.Thread | None = None

    def build_command(self) -> list[str] | None:
        exec_path = (self.config.sidecar_exec or "").strip()
        script = (self.config.sidecar_command or "").strip()
        if not exec_path:
            return None
        if is_node_executable(exec_path) and not script:
            return None
        return [exec_path, *([script] if script else []), *self.config.sidecar_args]

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def _pump_stderr(self, proc: subprocess.Popen) -> None:
        if proc.stderr is None:
            return
        for raw in proc.stderr:
            text = raw.decode(errors="replace").strip()
            if text:
                logger.info("[sidecar] %s", text)

    def start(self) -> SidecarResult:
        if self.running:
            return SidecarResult([], False, "Sidecar already running")
        cmd = self.build_command()
        if cmd is None:
            logger.warning("sidecar enabled with a Node executable but no command configured; skipping")
            return SidecarResult([], False, "No sidecar command configured")

        try:
            proc = subprocess.Popen(cmd, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
        except OSError as exc:
            raise RuntimeError(f"Failed to spawn sidecar {cmd[0]}: {exc}") from exc
        self.process = proc
        self._stderr_thread = threading.Thread(target=self._pump_stderr, args=(proc,), name="overty-sidecar-stderr", daemon=True)
        self._stderr_thread.start()

        if self.config.sidecar_start_delay > 0:
            time.sleep(self.config.sidecar_start_delay)
        code = proc.poll()
        if code is not None:
            self.process = None
            raise RuntimeError(f"Sidecar exited during startup (exit {code}): {' '.join(cmd)}")

        logger.info("started sidecar pid=%s cmd=%s", proc.pid, cmd)
        return SidecarResult(cmd, True, "Sidecar started")

    def stop(self) -> bool:
        proc = self.process
        self.process = None
        if proc is None:
            return False
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=STOP_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                logger.warning("sidecar pid=%s ignored SIGTERM; killing", proc.pid)
                proc.kill()
                proc.wait()
        logger.info("sidecar stopped (exit %s)", proc.returncode)
        return True
