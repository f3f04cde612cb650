"""Multipart upload sequencing.

An upload session is opened against the store, the source stream is cut
into fixed-size parts that are uploaded in order, and the session is then
either completed with the full ordered part list or aborted. The session is
managed as a scoped resource so every exit path finalizes it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, BinaryIO

import anyio
from starlette.concurrency import run_in_threadpool

from storage_gateway.app.services.base import BaseService, ServiceError
from storage_gateway.common.config import Settings
from storage_gateway.infra.observability.metrics import MULTIPART_SESSIONS
from storage_gateway.infra.storage.client import CompletedPart, StorageClient

logger = logging.getLogger("storage.multipart")

# Maximum part number allowed by S3
MAX_PART_NUMBER = 10000


class InvalidSessionStateError(ServiceError):
    """Raised on a transition the upload session state machine forbids."""


class UploadStreamError(ServiceError):
    """Raised when the source stream ends before its declared length."""


class UploadSessionState(str, enum.Enum):
    CREATED = "created"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ABORTED = "aborted"


_ALLOWED_TRANSITIONS: dict[UploadSessionState, frozenset[UploadSessionState]] = {
    UploadSessionState.CREATED: frozenset(
        {UploadSessionState.UPLOADING, UploadSessionState.ABORTED}
    ),
    UploadSessionState.UPLOADING: frozenset(
        {UploadSessionState.COMPLETED, UploadSessionState.ABORTED}
    ),
    UploadSessionState.COMPLETED: frozenset(),
    UploadSessionState.ABORTED: frozenset(),
}


@dataclass
class UploadSession:
    """Transient state of one multipart upload; lives for one upload call."""

    upload_id: str
    bucket: str
    object_key: str
    parts: list[CompletedPart] = field(default_factory=list)
    state: UploadSessionState = UploadSessionState.CREATED

    @property
    def next_part_number(self) -> int:
        return len(self.parts) + 1

    @property
    def is_finalized(self) -> bool:
        return self.state in (UploadSessionState.COMPLETED, UploadSessionState.ABORTED)

    def _transition(self, target: UploadSessionState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidSessionStateError(
                f"Upload session {self.upload_id} cannot move from "
                f"{self.state.value} to {target.value}"
            )
        self.state = target

    def start_uploading(self) -> None:
        self._transition(UploadSessionState.UPLOADING)

    def record_part(self, part: CompletedPart) -> None:
        if self.state is not UploadSessionState.UPLOADING:
            raise InvalidSessionStateError(
                f"Upload session {self.upload_id} is {self.state.value}; "
                "parts can only be recorded while uploading"
            )
        if part.part_number != self.next_part_number:
            raise InvalidSessionStateError(
                f"Expected part {self.next_part_number}, got {part.part_number}"
            )
        self.parts.append(part)

    def mark_completed(self) -> None:
        self._transition(UploadSessionState.COMPLETED)

    def mark_aborted(self) -> None:
        self._transition(UploadSessionState.ABORTED)


async def _read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, tolerating short reads; stops early only at EOF."""
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = await run_in_threadpool(stream.read, remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


class UploadSequencer(BaseService):
    """Opens a session, uploads its parts in order and completes it, aborting on any failure."""

    def __init__(
        self,
        storage: StorageClient,
        *,
        settings: Settings,
        part_size: int | None = None,
    ) -> None:
        super().__init__(storage, settings=settings)
        self._part_size = int(
            part_size if part_size is not None else settings.STORAGE_PART_SIZE_BYTES
        )
        if self._part_size <= 0:
            raise ValueError("part_size must be positive")

    @property
    def part_size(self) -> int:
        return self._part_size

    @asynccontextmanager
    async def session(
        self,
        object_key: str,
        *,
        content_type: str | None = None,
        server_side_encryption: str | None = None,
    ) -> AsyncIterator[UploadSession]:
        """Open an upload session that is completed on exit or aborted on error.

        The body of the ``async with`` block uploads parts through
        :meth:`upload_part`. Leaving the block normally issues the completion
        call with every recorded part; leaving it by exception (including a
        failed completion) issues exactly one abort and re-raises the
        original error.
        """
        upload = await self._call(
            "init_multipart_upload",
            self.storage.init_multipart_upload,
            bucket=self.bucket,
            object_key=object_key,
            content_type=content_type,
            server_side_encryption=server_side_encryption,
        )
        session = UploadSession(
            upload_id=upload.upload_id,
            bucket=upload.bucket,
            object_key=upload.object_key,
        )
        logger.info(
            "multipart_opened key=%s upload_id=%s",
            session.object_key,
            session.upload_id,
            extra={"extra": {"key": session.object_key, "upload_id": session.upload_id}},
        )
        try:
            yield session
            await self._complete(session)
        except (Exception, asyncio.CancelledError) as exc:
            # a cancelled scope cancels every later await unless shielded
            with anyio.CancelScope(shield=True):
                await self._abort(session, exc)
            raise

    async def upload_part(self, session: UploadSession, body: bytes) -> CompletedPart:
        """Upload ``body`` as the session's next part and record its ETag."""
        if not body:
            raise ValueError("Refusing to upload an empty part")
        if session.state is UploadSessionState.CREATED:
            session.start_uploading()
        part_number = session.next_part_number
        if part_number > MAX_PART_NUMBER:
            raise InvalidSessionStateError(
                f"Upload would exceed {MAX_PART_NUMBER} parts; increase the part size"
            )
        part = await self._call(
            "upload_part",
            self.storage.upload_part,
            bucket=session.bucket,
            object_key=session.object_key,
            upload_id=session.upload_id,
            part_number=part_number,
            body=body,
        )
        session.record_part(part)
        logger.debug(
            "multipart_part key=%s upload_id=%s part_number=%s size=%s",
            session.object_key,
            session.upload_id,
            part_number,
            len(body),
        )
        return part

    async def upload_stream(
        self,
        stream: BinaryIO,
        *,
        object_key: str,
        size: int,
        content_type: str | None = None,
        server_side_encryption: str | None = None,
    ) -> UploadSession:
        """Upload ``size`` bytes from ``stream`` as one object under ``object_key``.

        Parts are ``part_size`` bytes, the last one possibly shorter, numbered
        from 1 in stream order. A zero-length stream uploads no parts and the
        store decides whether an empty completion is acceptable.

        Returns:
            The finalized (completed) UploadSession.

        Raises:
            ValueError: If ``size`` is negative or needs more than
                ``MAX_PART_NUMBER`` parts; no session is opened.
            UploadStreamError: If the stream ends before ``size`` bytes.
            StorageError: If any store call fails; the session is aborted first.
        """
        if size < 0:
            raise ValueError("size must not be negative")
        part_count = -(-size // self._part_size)
        if part_count > MAX_PART_NUMBER:
            raise ValueError(
                f"{size} bytes need {part_count} parts of {self._part_size} bytes; "
                f"at most {MAX_PART_NUMBER} are allowed"
            )

        async with self.session(
            object_key,
            content_type=content_type,
            server_side_encryption=server_side_encryption,
        ) as session:
            session.start_uploading()
            offset = 0
            while offset < size:
                chunk = await _read_exact(stream, min(self._part_size, size - offset))
                if not chunk:
                    raise UploadStreamError(
                        f"Stream for '{object_key}' ended at byte {offset} of {size}"
                    )
                await self.upload_part(session, chunk)
                offset += len(chunk)
        return session

    async def _complete(self, session: UploadSession) -> None:
        if session.state is not UploadSessionState.UPLOADING:
            raise InvalidSessionStateError(
                f"Upload session {session.upload_id} is {session.state.value}; "
                "only an uploading session can be completed"
            )
        await self._call(
            "complete_multipart_upload",
            self.storage.complete_multipart_upload,
            bucket=session.bucket,
            object_key=session.object_key,
            upload_id=session.upload_id,
            parts=list(session.parts),
        )
        session.mark_completed()
        MULTIPART_SESSIONS.labels("completed").inc()
        logger.info(
            "multipart_completed key=%s upload_id=%s parts=%s",
            session.object_key,
            session.upload_id,
            len(session.parts),
            extra={
                "extra": {
                    "key": session.object_key,
                    "upload_id": session.upload_id,
                    "parts": len(session.parts),
                }
            },
        )

    async def _abort(self, session: UploadSession, cause: BaseException) -> None:
        """Abort the session; an abort failure is logged and never replaces ``cause``."""
        if session.is_finalized:
            return
        try:
            await self._call(
                "abort_multipart_upload",
                self.storage.abort_multipart_upload,
                bucket=session.bucket,
                object_key=session.object_key,
                upload_id=session.upload_id,
            )
        except Exception as abort_exc:
            MULTIPART_SESSIONS.labels("abort_failed").inc()
            logger.warning(
                "multipart_abort_failed key=%s upload_id=%s cause=%r error=%r",
                session.object_key,
                session.upload_id,
                cause,
                abort_exc,
                extra={
                    "extra": {
                        "key": session.object_key,
                        "upload_id": session.upload_id,
                        "cause": repr(cause),
                        "error": repr(abort_exc),
                    }
                },
            )
            return
        session.mark_aborted()
        MULTIPART_SESSIONS.labels("aborted").inc()
        logger.warning(
            "multipart_aborted key=%s upload_id=%s parts=%s cause=%r",
            session.object_key,
            session.upload_id,
            len(session.parts),
            cause,
            extra={
                "extra": {
                    "key": session.object_key,
                    "upload_id": session.upload_id,
                    "parts": len(session.parts),
                    "cause": repr(cause),
                }
            },
        )
