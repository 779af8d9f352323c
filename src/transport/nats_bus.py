"""
NATS transport: worker request/reply over NATS subjects.

Subjects: {prefix}.{worker_id}.offer | .commit | .release
"""

import os
import json
import logging
from typing import Dict, List, Optional

from nats.aio.client import Client as NATS
from nats.errors import NoRespondersError, TimeoutError as NatsTimeoutError
from opentelemetry import trace
from pydantic import BaseModel, ValidationError as WireValidationError

from auction.models import CommitResult, Offer, PlacementRequest
from executor.agent import WorkerAgent
from observability.tracing import create_span, extract_context, inject_headers

from .base import WorkerTransport, WorkerUnavailable
from .messages import (
    CommitReplyMessage,
    ErrorReplyMessage,
    OfferMessage,
    PlacementRequestMessage,
    ReleaseReplyMessage,
    ReleaseRequestMessage,
)

logger = logging.getLogger(__name__)

NATS_URL = os.getenv("NATS_URL", "nats://127.0.0.1:4222")
SUBJECT_PREFIX = os.getenv("EXECUTOR_SUBJECT_PREFIX", "executor")


async def connect(url: Optional[str] = None) -> NATS:
    nc = NATS()
    await nc.connect(servers=[url or NATS_URL])
    return nc


def subject_for(prefix: str, worker_id: str, operation: str) -> str:
    return f"{prefix}.{worker_id}.{operation}"


def _encode(message: BaseModel) -> bytes:
    return message.model_dump_json().encode()


class NatsTransport(WorkerTransport):
    """
    Auctioneer side: sends requests and waits for a single reply.

    Timeouts and missing responders surface as WorkerUnavailable.
    """

    def __init__(
        self,
        nc,
        prefix: str = SUBJECT_PREFIX,
        request_timeout: float = 1.0,
        commit_timeout: float = 10.0,
    ):
        """
        Initialize transport.

        Args:
            nc: Connected NATS client
            prefix: Subject prefix shared with the worker servers
            request_timeout: Seconds to wait for offer and release replies
            commit_timeout: Seconds to wait for a commit reply
        """
        super().__init__()
        self.nc = nc
        self.prefix = prefix
        self.request_timeout = request_timeout
        self.commit_timeout = commit_timeout

    async def _request(
        self, worker_id: str, operation: str, body: bytes, timeout: Optional[float] = None
    ) -> dict:
        subject = subject_for(self.prefix, worker_id, operation)
        self.stats.record(f"{operation}_request")
        try:
            msg = await self.nc.request(
                subject, body, timeout=timeout or self.request_timeout, headers=inject_headers()
            )
        except NatsTimeoutError as e:
            raise WorkerUnavailable(worker_id, "timeout") from e
        except NoRespondersError as e:
            raise WorkerUnavailable(worker_id, "no responders") from e
        self.stats.record(f"{operation}_reply")

        try:
            payload = json.loads(msg.data.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise WorkerUnavailable(worker_id, f"malformed reply: {e}") from e
        if "error" in payload:
            raise WorkerUnavailable(worker_id, ErrorReplyMessage.model_validate(payload).error)
        return payload

    async def request_offer(self, worker_id: str) -> Offer:
        payload = await self._request(worker_id, "offer", b"{}")
        try:
            return OfferMessage.model_validate(payload).to_domain()
        except (WireValidationError, ValueError) as e:
            raise WorkerUnavailable(worker_id, f"invalid offer: {e}") from e

    async def request_commit(self, worker_id: str, request: PlacementRequest) -> CommitResult:
        body = _encode(PlacementRequestMessage.from_domain(request))
        payload = await self._request(worker_id, "commit", body, timeout=self.commit_timeout)
        try:
            return CommitReplyMessage.model_validate(payload).to_domain()
        except WireValidationError as e:
            raise WorkerUnavailable(worker_id, f"invalid commit reply: {e}") from e

    async def request_release(self, worker_id: str, placement_id: str) -> bool:
        body = _encode(ReleaseRequestMessage(placement_id=placement_id))
        payload = await self._request(worker_id, "release", body)
        return ReleaseReplyMessage.model_validate(payload).released


class NatsWorkerServer:
    """
    Worker side: answers offer, commit and release requests for one agent.
    """

    def __init__(self, agent: WorkerAgent, nc, prefix: str = SUBJECT_PREFIX):
        self.agent = agent
        self.nc = nc
        self.prefix = prefix
        self._subscriptions: List = []

    async def start(self) -> None:
        handlers = {
            "offer": self._handle_offer,
            "commit": self._handle_commit,
            "release": self._handle_release,
        }
        for operation, handler in handlers.items():
            subject = subject_for(self.prefix, self.agent.worker_id, operation)
            sub = await self.nc.subscribe(subject, cb=handler)
            self._subscriptions.append(sub)
        logger.info(f"Worker {self.agent.worker_id} serving on {self.prefix}.{self.agent.worker_id}.*")

    async def stop(self) -> None:
        for sub in self._subscriptions:
            await sub.unsubscribe()
        self._subscriptions.clear()

    async def handle(self, operation: str, data: bytes) -> bytes:
        """
        Process one request body and build the reply body.

        Malformed requests get an error reply rather than silence, so the
        auctioneer does not have to wait for its timeout.
        """
        try:
            body: Dict = json.loads(data.decode()) if data else {}
            if operation == "offer":
                reply: BaseModel = OfferMessage.from_domain(self.agent.snapshot_offer())
            elif operation == "commit":
                request = PlacementRequestMessage.model_validate(body).to_domain()
                result = await self.agent.try_commit(request)
                reply = CommitReplyMessage.from_domain(result)
            elif operation == "release":
                release = ReleaseRequestMessage.model_validate(body)
                released = await self.agent.release(release.placement_id)
                reply = ReleaseReplyMessage(placement_id=release.placement_id, released=released)
            else:
                reply = ErrorReplyMessage(error=f"unknown operation {operation}")
        except (UnicodeDecodeError, json.JSONDecodeError, WireValidationError, ValueError) as e:
            logger.warning(f"Worker {self.agent.worker_id} rejected malformed {operation}: {e}")
            reply = ErrorReplyMessage(error=str(e))
        return _encode(reply)

    async def _respond(self, operation: str, msg) -> None:
        with create_span(
            f"worker.{operation}",
            {"worker_id": self.agent.worker_id},
            kind=trace.SpanKind.SERVER,
            context=extract_context(msg.headers),
        ):
            reply = await self.handle(operation, msg.data)
        await msg.respond(reply)

    async def _handle_offer(self, msg) -> None:
        await self._respond("offer", msg)

    async def _handle_commit(self, msg) -> None:
        await self._respond("commit", msg)

    async def _handle_release(self, msg) -> None:
        await self._respond("release", msg)
