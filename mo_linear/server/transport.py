"""Contains the line-delimited JSON transport between the editor and the command router.

Each inbound line is one JSON request; each outbound line is one JSON
response. Requests are processed one at a time, in order. A heartbeat keeps
the editor informed that the process is alive.
"""

import asyncio
import json
import sys
from enum import Enum
from typing import Any, TextIO

import structlog

from mo_linear.commands.router import CommandRouter

from .manifest import build_manifest

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

MIN_SUPPORTED_VERSION = "1.0"
READY_MESSAGE = "Mo Linear MCP ready"
DEFAULT_HEARTBEAT_INTERVAL = 5.0
MAX_LINE_BYTES = 16 * 1024 * 1024
LINE_SEPARATOR = b"\n"


class ProtocolError(Exception):
    """Raised when an inbound message violates the protocol."""

    pass


class TransportState(str, Enum):
    """Enum for the lifecycle states of the transport."""

    STOPPED = "stopped"
    LISTENING = "listening"
    RUNNING = "running"


def parse_version(version: str) -> tuple[int, int]:
    """Parse a ``major.minor`` version string.

    Raises:
        ProtocolError: If the version is not of that form
    """
    parts = str(version).strip().split(".")
    try:
        major = int(parts[0])
        minor = int(parts[1]) if len(parts) > 1 and parts[1] != "" else 0
    except ValueError as exc:
        raise ProtocolError(f"Invalid protocol version: {version}") from exc
    return major, minor


def check_version(version: Any) -> None:
    """Reject versions older than the minimum supported one. A missing version is accepted.

    Raises:
        ProtocolError: If the version is unparsable or too old
    """
    if version is None:
        return
    if parse_version(version) < parse_version(MIN_SUPPORTED_VERSION):
        raise ProtocolError(f"Unsupported protocol version {version}; minimum supported version is {MIN_SUPPORTED_VERSION}")


def pong() -> dict[str, Any]:
    """The heartbeat and ping reply."""
    return {"success": True, "message": "pong"}


def failure(message: str, error: str | None = None) -> dict[str, Any]:
    """A protocol-level failure response."""
    response: dict[str, Any] = {"success": False, "message": message}
    if error:
        response["error"] = error
    return response


class StdioTransport:
    """Reads requests line by line and writes one JSON response per line."""

    def __init__(
        self,
        router: CommandRouter,
        reader: asyncio.StreamReader | None = None,
        output: TextIO | None = None,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    ) -> None:
        """Initialize the transport. Standard input/output are used unless overridden."""
        self.router = router
        self.reader = reader
        self.output = output if output is not None else sys.stdout
        self.heartbeat_interval = heartbeat_interval
        self.state = TransportState.STOPPED
        self._write_lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task[None] | None = None

    async def send(self, payload: dict[str, Any]) -> None:
        """Write one response line."""
        line = json.dumps(payload, ensure_ascii=False, default=str)
        async with self._write_lock:
            self.output.write(line + "\n")
            self.output.flush()

    def handshake(self) -> dict[str, Any]:
        """The message announcing readiness and the available tools."""
        return {
            "success": True,
            "message": READY_MESSAGE,
            "data": {"tools": build_manifest(self.router.registry.values(), self.router.namespace)},
        }

    async def start(self) -> None:
        """Announce readiness and start the heartbeat."""
        if self.state != TransportState.STOPPED:
            return
        self.state = TransportState.LISTENING
        await self.send(self.handshake())
        if self.heartbeat_interval > 0:
            self._heartbeat_task = asyncio.create_task(self._heartbeat())
        self.state = TransportState.RUNNING
        logger.info("Transport running", heartbeat_interval=self.heartbeat_interval, commands=len(self.router.registry))

    async def stop(self) -> None:
        """Stop the heartbeat and return to the stopped state."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None
        if self.state != TransportState.STOPPED:
            logger.info("Transport stopped")
        self.state = TransportState.STOPPED

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.send(pong())

    async def _open_stdin(self) -> asyncio.StreamReader:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=MAX_LINE_BYTES)
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
        return reader

    async def _read_line(self, reader: asyncio.StreamReader) -> bytes | None:
        """Read one request line. Returns None when the line was too long and has been discarded."""
        try:
            return await reader.readuntil(LINE_SEPARATOR)
        except asyncio.IncompleteReadError as exc:
            return exc.partial
        except asyncio.LimitOverrunError as exc:
            logger.warning("Discarding oversized request line", consumed=exc.consumed)
            await self._discard_line(reader, exc.consumed)
            return None

    @staticmethod
    async def _discard_line(reader: asyncio.StreamReader, consumed: int) -> None:
        """Drop buffered input up to and including the next line separator."""
        while True:
            await reader.readexactly(consumed)
            try:
                await reader.readuntil(LINE_SEPARATOR)
                return
            except asyncio.IncompleteReadError:
                return
            except asyncio.LimitOverrunError as exc:
                consumed = exc.consumed

    async def serve(self) -> None:
        """Process requests until input reaches end of file."""
        if self.reader is None:
            self.reader = await self._open_stdin()
        reader = self.reader
        await self.start()
        try:
            while True:
                line = await self._read_line(reader)
                if line is None:
                    await self.send(failure("Invalid JSON request", "Request line exceeds the maximum size"))
                    continue
                if not line:
                    logger.info("Input closed")
                    break
                response = await self.handle_line(line.decode("utf-8", errors="replace"))
                if response is not None:
                    await self.send(response)
        finally:
            await self.stop()

    async def handle_line(self, line: str) -> dict[str, Any] | None:
        """Turn one request line into a response. Returns None for lines that are ignored."""
        if not line.strip():
            return None
        try:
            request = self.parse_request(line)
        except ProtocolError as exc:
            logger.warning("Rejected malformed request", error=str(exc))
            return failure("Invalid JSON request", str(exc))

        if request.get("type") == "ping":
            return pong()

        try:
            check_version(request.get("version"))
        except ProtocolError as exc:
            logger.warning("Rejected request with unsupported version", version=request.get("version"))
            return failure(str(exc), "UNSUPPORTED_VERSION")

        command = request.get("command")
        if not isinstance(command, str) or not self.router.handles(command):
            logger.debug("Ignoring request outside the command namespace", command=command)
            return None

        context = request.get("context")
        result = await self.router.dispatch(command, context if isinstance(context, dict) else None)
        return result.to_wire()

    @staticmethod
    def parse_request(line: str) -> dict[str, Any]:
        """Decode a request line.

        Raises:
            ProtocolError: If the line is not a JSON object
        """
        try:
            request = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"Malformed JSON: {exc.msg}") from exc
        if not isinstance(request, dict):
            raise ProtocolError("Request must be a JSON object")
        return request
