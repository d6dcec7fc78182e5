"""Transfer orchestrator.

Drives one deploy end to end as a strictly sequential state machine:

    START -> QUOTA_CHECK -> SESSION_OPEN -> ARCHIVE -> APPEND_CHUNK*
          -> QUOTA_CHECK_POST -> REMOTE_CLEAR? -> FINALIZE -> LOCAL_CLEANUP -> DONE

FAILED is reachable from every state. Once the archive exists it is removed
on every exit path. Remote sessions abandoned by a failure are left for the
server to expire.
"""

import enum
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from neko_deploy.archive import Artifact, ZipArchiver, artifact_scope
from neko_deploy.auth import cookie_credential, credential_from_config
from neko_deploy.chunking import ChunkPlan, iter_chunks, plan_chunks
from neko_deploy.client import NekowebClient, StepOutcome, UploadSession
from neko_deploy.config import Config
from neko_deploy.errors import TransferCancelled
from neko_deploy.limits import BIG_UPLOADS, GENERAL, ZIP, RateLimitGate


class TransferState(enum.Enum):
    START = "start"
    QUOTA_CHECK = "quota_check"
    SESSION_OPEN = "session_open"
    ARCHIVE = "archive"
    APPEND_CHUNK = "append_chunk"
    QUOTA_CHECK_POST = "quota_check_post"
    REMOTE_CLEAR = "remote_clear"
    FINALIZE = "finalize"
    LOCAL_CLEANUP = "local_cleanup"
    DONE = "done"
    FAILED = "failed"


# States that honour cancellation on entry. Past FINALIZE the import is live.
_CANCELLABLE = frozenset(
    {
        TransferState.QUOTA_CHECK,
        TransferState.SESSION_OPEN,
        TransferState.ARCHIVE,
        TransferState.APPEND_CHUNK,
        TransferState.QUOTA_CHECK_POST,
        TransferState.REMOTE_CLEAR,
        TransferState.FINALIZE,
    }
)


@dataclass
class TransferReport:
    session: UploadSession
    plan: ChunkPlan
    chunks_sent: int = 0
    bytes_sent: int = 0
    outcomes: List[StepOutcome] = field(default_factory=list)


class TransferOrchestrator:
    def __init__(
        self,
        config: Config,
        client: NekowebClient,
        gate: RateLimitGate,
        archiver: Optional[ZipArchiver] = None,
        logger: Optional[logging.Logger] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.client = client
        self.gate = gate
        self.logger = logger or logging.getLogger("neko_deploy")
        self.archiver = archiver or ZipArchiver(self.logger)
        self.cancel_event = cancel_event or gate.cancel_event
        self.state = TransferState.START
        self.history: List[TransferState] = [TransferState.START]

    @classmethod
    def from_config(
        cls, config: Config, logger: Optional[logging.Logger] = None
    ) -> "TransferOrchestrator":
        """Wire the real client, gate and archiver around one shared cancel event."""
        logger = logger or logging.getLogger("neko_deploy")
        cancel_event = threading.Event()
        cookie = cookie_credential(config)
        client = NekowebClient(
            config,
            credential_from_config(config, cookie),
            cookie=cookie,
        )
        gate = RateLimitGate(client.get_limit, logger=logger, cancel_event=cancel_event)
        return cls(
            config,
            client,
            gate,
            archiver=ZipArchiver(logger),
            logger=logger,
            cancel_event=cancel_event,
        )

    def cancel(self) -> None:
        """Abandon the transfer at the next step boundary."""
        self.cancel_event.set()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _enter(self, state: TransferState) -> None:
        if self.cancel_event.is_set() and state in _CANCELLABLE:
            raise TransferCancelled(f"Transfer cancelled before {state.value}.")
        self.logger.debug(f"State: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def run(self) -> TransferReport:
        """Execute the transfer. Returns a report or raises the triggering error."""
        try:
            self._enter(TransferState.QUOTA_CHECK)
            self.gate.check_and_wait(BIG_UPLOADS)

            self._enter(TransferState.SESSION_OPEN)
            session = self.client.create_session()
            self.logger.info(f"Upload session: {session.id}")

            self._enter(TransferState.ARCHIVE)
            with artifact_scope(
                self.archiver,
                self.config.directory,
                self.config.folder,
                self._artifact_path(session),
                self.logger,
            ) as artifact:
                report = self._transfer(session, artifact)
                self._enter(TransferState.LOCAL_CLEANUP)

            self._enter(TransferState.DONE)
        except Exception as exc:
            self.logger.error(f"Transfer failed during {self.state.value}: {exc}")
            self._enter(TransferState.FAILED)
            raise

        self.logger.info("Upload completed and cleaned up.")
        return report

    def _transfer(self, session: UploadSession, artifact: Artifact) -> TransferReport:
        plan = plan_chunks(artifact.size, self.config.size_policy)
        self.logger.info(
            f"File size: {plan.total_size:,} bytes  |  "
            f"Chunk size: {plan.chunk_size:,}  |  Chunks: {plan.chunk_count}"
        )
        report = TransferReport(session=session, plan=plan)

        self._enter(TransferState.APPEND_CHUNK)
        self._append_all(session, artifact, plan, report)

        self._enter(TransferState.QUOTA_CHECK_POST)
        self.gate.check_all((BIG_UPLOADS, ZIP, GENERAL))

        if self.config.clear_destination:
            self._enter(TransferState.REMOTE_CLEAR)
            self._record(report, self.client.delete_path(self.config.folder))

        self._enter(TransferState.FINALIZE)
        self.client.finalize_session(session.id)
        self.logger.info(f"Imported session {session.id} into {self.config.folder}.")

        if self.config.cache_bust_enabled:
            content = f"<!-- {int(time.time() * 1000)} -->"
            self._record(
                report, self.client.touch_entry(self.config.entry_document, content)
            )
        return report

    def _append_all(
        self,
        session: UploadSession,
        artifact: Artifact,
        plan: ChunkPlan,
        report: TransferReport,
    ) -> None:
        t0 = time.monotonic()
        for chunk in iter_chunks(plan):
            if self.cancel_event.is_set():
                raise TransferCancelled(
                    f"Transfer cancelled before chunk {chunk.index}."
                )
            data = artifact.read_range(chunk.start, chunk.end)
            self.logger.debug(f"Uploading chunk {chunk.index} with size {len(data)}...")
            self.client.append_chunk(session.id, chunk.index, data)

            report.chunks_sent += 1
            report.bytes_sent += len(data)
            elapsed = max(time.monotonic() - t0, 0.001)
            speed = report.bytes_sent / elapsed
            pct = report.chunks_sent / plan.chunk_count * 100
            eta_s = (plan.total_size - report.bytes_sent) / speed if speed else 0
            self.logger.info(
                f"[{pct:5.1f}%] chunk {chunk.index + 1}/{plan.chunk_count}  "
                f"speed={speed / (1024 * 1024):.1f} MB/s  eta={_fmt_seconds(eta_s)}"
            )

        self.logger.info(f"Uploaded {report.bytes_sent:,} bytes in {report.chunks_sent} chunk(s).")

    def _record(self, report: TransferReport, outcome: StepOutcome) -> None:
        report.outcomes.append(outcome)
        if outcome.ok:
            self.logger.info(f"{outcome.step}: ok")
        else:
            self.logger.warning(f"{outcome.step}: skipped ({outcome.error})")

    def _artifact_path(self, session: UploadSession) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]", "_", session.id)
        return self.config.work_dir / f"{safe}.zip"


def _fmt_seconds(s: float) -> str:
    if s <= 0:
        return "--:--"
    s = int(s)
    h, rem = divmod(s, 3600)
    m, sec = divmod(rem, 60)
    if h:
        return f"{h}h{m:02d}m{sec:02d}s"
    if m:
        return f"{m}m{sec:02d}s"
    return f"{sec}s"
