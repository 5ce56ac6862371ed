"""Runs generated workflow code in an isolated interpreter and streams its output."""

import asyncio
import logging
import os
import sys
import tempfile
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from services.simulator.locks import PipelineLockRegistry
from services.simulator.log_channel import LogChannel
from shared.constants import (
    DEFAULT_SIMULATION_TIMEOUT_SECONDS,
    MAX_SIMULATION_TIMEOUT_SECONDS,
    MAX_LOG_LINE_BYTES,
    MAX_LOG_LINES,
    PERSISTED_LOG_LINES,
    SESSION_RETENTION_SECONDS,
    EXIT_CODE_TIMEOUT,
    EXIT_CODE_CANCELLED,
    EXIT_CODE_OUTPUT_LIMIT,
    EXIT_CODE_LAUNCH_FAILED,
)
from shared.exceptions import ConflictError, NotFoundError
from shared.logging_config import set_session_id
from shared.types import CompleteEvent, LogEvent, SessionStatus
from shared.utils import generate_session_id


@dataclass
class SimulationSession:
    session_id: str
    pipeline_id: str
    status: SessionStatus = SessionStatus.RUNNING
    logs: List[str] = field(default_factory=list)
    exit_code: Optional[int] = None
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    output_limited: bool = False
    process: Any = field(default=None, repr=False)
    task: Any = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.RUNNING

    def to_record(self, max_lines: int = PERSISTED_LOG_LINES) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "pipeline_id": self.pipeline_id,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "logs": self.logs[-max_lines:],
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


def _configured_timeout() -> float:
    timeout = float(os.getenv("SIMULATION_TIMEOUT_SECONDS", DEFAULT_SIMULATION_TIMEOUT_SECONDS))
    return min(max(timeout, 1), MAX_SIMULATION_TIMEOUT_SECONDS)


class SimulationRunner:
    """Owns simulation sessions from start to their single terminal transition.

    Each run executes ``python -I -u workflow.py`` in a fresh temporary
    directory with only PATH and the workflow's secrets in its environment.
    Every output line is appended to the session and published on the log
    channel as it arrives. Runs that do not exit on their own end with a
    negative sentinel exit code.
    """

    def __init__(self, channel: Optional[LogChannel] = None, locks: Optional[PipelineLockRegistry] = None,
                 session_store=None, timeout: Optional[float] = None, python: Optional[str] = None,
                 retention_seconds: float = SESSION_RETENTION_SECONDS):
        self.channel = channel or LogChannel()
        self.locks = locks or PipelineLockRegistry()
        self.session_store = session_store
        self.timeout = timeout or _configured_timeout()
        self.python = python or os.getenv("SIMULATION_PYTHON") or sys.executable
        self.retention_seconds = retention_seconds
        self.sessions: Dict[str, SimulationSession] = {}

    def start(self, pipeline_id: str, code: str, env: Optional[Dict[str, str]] = None) -> str:
        """Starts a run on the current event loop and returns its session id immediately"""
        session_id = generate_session_id()
        if not self.locks.acquire(pipeline_id, session_id):
            raise ConflictError(
                "simulation already running",
                pipeline_id=pipeline_id,
                session_id=self.locks.holder(pipeline_id),
            )

        session = SimulationSession(session_id=session_id, pipeline_id=pipeline_id)
        self.sessions[session_id] = session
        self.channel.open(session_id)
        session.task = asyncio.get_running_loop().create_task(self._run(session, code, dict(env or {})))

        logging.info(f"Simulation {session_id} started for pipeline {pipeline_id}",
                     extra={"pipeline_id": pipeline_id, "session_id": session_id})
        return session_id

    def get(self, session_id: str) -> Optional[SimulationSession]:
        return self.sessions.get(session_id)

    def stop(self, session_id: str) -> bool:
        """Kills a running session; a no-op for sessions that already ended"""
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Simulation session {session_id} not found", session_id=session_id)
        if session.is_terminal:
            return False

        self._kill(session.process)
        self._finish(session, EXIT_CODE_CANCELLED)
        logging.info(f"Simulation {session_id} cancelled",
                     extra={"pipeline_id": session.pipeline_id, "session_id": session_id})
        return True

    async def _run(self, session: SimulationSession, code: str, env: Dict[str, str]) -> None:
        set_session_id(session.session_id)
        exit_code = EXIT_CODE_LAUNCH_FAILED
        try:
            with tempfile.TemporaryDirectory(prefix="simulation-") as workdir:
                path = os.path.join(workdir, "workflow.py")
                with open(path, "w", encoding="utf-8") as f:
                    f.write(code)

                try:
                    process = await asyncio.create_subprocess_exec(
                        self.python, "-I", "-u", path,
                        stdout=asyncio.subprocess.PIPE,
                        stderr=asyncio.subprocess.STDOUT,
                        cwd=workdir,
                        env=self._environment(env),
                        limit=MAX_LOG_LINE_BYTES,
                    )
                except OSError as e:
                    logging.error(f"Failed to launch simulation: {e}", extra={"session_id": session.session_id})
                    self._append(session, f"[SIMULATION] failed to launch interpreter: {e}")
                    return

                session.process = process
                if session.is_terminal:
                    self._kill(process)

                try:
                    exit_code = await asyncio.wait_for(self._pump(session, process), timeout=self.timeout)
                except asyncio.TimeoutError:
                    self._kill(process)
                    await process.wait()
                    self._append(session, f"[SIMULATION] timed out after {self.timeout:g}s")
                    exit_code = EXIT_CODE_TIMEOUT
                else:
                    if session.output_limited:
                        exit_code = EXIT_CODE_OUTPUT_LIMIT
        except asyncio.CancelledError:
            self._kill(session.process)
            exit_code = EXIT_CODE_CANCELLED
            raise
        except Exception as e:
            logging.exception(f"Simulation {session.session_id} crashed: {e}",
                              extra={"session_id": session.session_id})
            self._kill(session.process)
            exit_code = EXIT_CODE_LAUNCH_FAILED
        finally:
            self._finish(session, exit_code)

    async def _pump(self, session: SimulationSession, process) -> int:
        while True:
            try:
                raw = await process.stdout.readline()
            except ValueError:
                line = f"[SIMULATION] output line exceeded {MAX_LOG_LINE_BYTES} bytes and was truncated"
            else:
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")

            self._append(session, line)
            if len(session.logs) >= MAX_LOG_LINES:
                session.output_limited = True
                self._kill(process)
                self._append(session, f"[SIMULATION] output exceeded {MAX_LOG_LINES} lines, run stopped")
                break

        return await process.wait()

    def _append(self, session: SimulationSession, line: str) -> None:
        if session.is_terminal:
            return
        session.logs.append(line)
        self.channel.publish(session.session_id, LogEvent(line=line))

    def _finish(self, session: SimulationSession, exit_code: int) -> None:
        if session.is_terminal:
            return

        session.exit_code = exit_code
        session.status = SessionStatus.SUCCEEDED if exit_code == 0 else SessionStatus.FAILED
        session.finished_at = time.time()
        self.channel.publish(session.session_id, CompleteEvent(success=exit_code == 0, exit_code=exit_code))
        self.locks.release(session.pipeline_id, session.session_id)
        self._persist(session)
        asyncio.get_running_loop().call_later(self.retention_seconds, self.sessions.pop, session.session_id, None)

        logging.info(f"Simulation {session.session_id} finished", extra={
            "pipeline_id": session.pipeline_id,
            "session_id": session.session_id,
            "status": session.status.value,
            "exit_code": exit_code,
        })

    def _persist(self, session: SimulationSession) -> None:
        if self.session_store is None:
            return
        try:
            self.session_store.save_session(session.to_record())
        except Exception as e:
            logging.error(f"Failed to persist simulation {session.session_id}: {e}",
                          extra={"session_id": session.session_id})

    def _environment(self, secrets: Dict[str, str]) -> Dict[str, str]:
        env = {"PATH": os.environ.get("PATH", os.defpath), "PYTHONIOENCODING": "utf-8"}
        env.update(secrets)
        return env

    def _kill(self, process) -> None:
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            pass
