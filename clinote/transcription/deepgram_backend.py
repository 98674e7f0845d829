"""Deepgram live (streaming) transcription client over websockets."""

import json
import asyncio
import logging
from typing import AsyncIterator, Optional

import aiohttp

from .base import AbstractTranscriptionClient
from ..exceptions import ConnectionFailed, StreamError
from ..models.events import (
    ConnectionClosed,
    StreamFailed,
    TranscriptionEvent,
    TranscriptReceived,
)
from ..models.transcription import TranscriptFragment, TranscriptionOptions

logger = logging.getLogger(__name__)

DEFAULT_LIVE_URL = "wss://api.deepgram.com/v1/listen"

_END_OF_STREAM = object()
_NORMAL_CLOSE_CODES = (1000,)
_IGNORED_MESSAGE_TYPES = ("Metadata", "SpeechStarted", "UtteranceEnd")


class DeepgramLiveClient(AbstractTranscriptionClient):
    """Streams raw audio to Deepgram and yields transcript events."""

    def __init__(self,
                 api_key: str,
                 url: str = DEFAULT_LIVE_URL,
                 connect_timeout: float = 10.0,
                 finish_timeout: float = 5.0):
        """Initialize Deepgram live client.

        Args:
            api_key: Deepgram API key
            url: Live transcription websocket endpoint
            connect_timeout: Seconds to wait for the websocket handshake
            finish_timeout: Seconds to wait for queued audio to flush on finish
        """
        if not api_key:
            raise ValueError("Deepgram API key is required - cannot connect without credentials")
        self.api_key = api_key
        self.url = url
        self.connect_timeout = connect_timeout
        self.finish_timeout = finish_timeout

        self._http: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._outbox: Optional[asyncio.Queue] = None
        self._sender: Optional[asyncio.Task] = None
        self._send_error: Optional[BaseException] = None
        self._finishing = False
        self.chunks_sent = 0

    async def connect(self, options: TranscriptionOptions) -> None:
        """Open the websocket with the given recognition options."""
        params = options.to_query_params()
        logger.info(f"Connecting to Deepgram: {self.url} {params}")

        self._http = aiohttp.ClientSession()
        try:
            self._ws = await asyncio.wait_for(
                self._http.ws_connect(
                    self.url,
                    params=params,
                    headers={"Authorization": f"Token {self.api_key}"},
                ),
                timeout=self.connect_timeout,
            )
        except aiohttp.WSServerHandshakeError as e:
            await self._http.close()
            logger.error(f"Deepgram rejected the connection: HTTP {e.status}")
            raise ConnectionFailed(f"Deepgram rejected the connection: HTTP {e.status} {e.message}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self._http.close()
            logger.error(f"Could not reach Deepgram: {e!r}")
            raise ConnectionFailed(f"Could not reach Deepgram: {e!r}") from e
        except asyncio.CancelledError:
            await self._http.close()
            logger.info("Deepgram connection attempt cancelled")
            raise

        self._outbox = asyncio.Queue()
        self._sender = asyncio.create_task(self._send_loop())
        logger.info("Deepgram connection opened")

    def send(self, chunk: bytes) -> None:
        """Queue audio for the sender task; dropped once finishing has begun."""
        if self._outbox is None or self._finishing:
            logger.debug(f"Dropping {len(chunk)} byte chunk, connection not accepting audio")
            return
        self._outbox.put_nowait(chunk)

    async def _send_loop(self) -> None:
        try:
            while True:
                item = await self._outbox.get()
                if item is _END_OF_STREAM:
                    await self._ws.send_str(json.dumps({"type": "CloseStream"}))
                    logger.debug("Sent CloseStream to Deepgram")
                    return
                await self._ws.send_bytes(item)
                self.chunks_sent += 1
        except (aiohttp.ClientError, ConnectionError) as e:
            logger.error(f"Failed to send audio to Deepgram: {e!r}")
            self._send_error = e
            await self._ws.close()

    async def events(self) -> AsyncIterator[TranscriptionEvent]:
        """Yield transcript events until the websocket closes."""
        ws = self._ws
        if ws is None:
            raise StreamError("Deepgram connection is not open")

        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                event = parse_message(msg.data)
                if event is None:
                    continue
                yield event
                if isinstance(event, StreamFailed):
                    return
            elif msg.type == aiohttp.WSMsgType.ERROR:
                yield StreamFailed(StreamError(f"Deepgram websocket error: {ws.exception()!r}"))
                return

        if self._send_error is not None:
            yield StreamFailed(StreamError(f"Failed to send audio: {self._send_error!r}"))
            return

        code = ws.close_code
        if not self._finishing and code not in _NORMAL_CLOSE_CODES:
            yield StreamFailed(StreamError(f"Deepgram closed the connection unexpectedly (code {code})"))
            return
        logger.info(f"Deepgram connection closed (code {code}), {self.chunks_sent} chunks sent")
        yield ConnectionClosed(code=code)

    async def finish(self) -> None:
        """Flush queued audio, send CloseStream and close the websocket."""
        if self._finishing:
            return
        self._finishing = True
        try:
            if self._sender is not None and not self._sender.done():
                self._outbox.put_nowait(_END_OF_STREAM)
                try:
                    await asyncio.wait_for(self._sender, timeout=self.finish_timeout)
                except asyncio.TimeoutError:
                    logger.warning("Timed out flushing audio to Deepgram")
            if self._ws is not None:
                await self._ws.close()
        finally:
            if self._http is not None:
                await self._http.close()
        logger.info("Deepgram connection released")


def parse_message(raw: str) -> Optional[TranscriptionEvent]:
    """Convert one Deepgram text frame into an event, or None if it carries no transcript.

    Args:
        raw: JSON text received on the websocket

    Returns:
        TranscriptReceived for ``Results`` messages, StreamFailed for ``Error``
        messages, None for everything else
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring non-JSON message from Deepgram: {raw[:200]!r}")
        return None
    if not isinstance(payload, dict):
        logger.warning(f"Ignoring unexpected message from Deepgram: {raw[:200]!r}")
        return None

    msg_type = payload.get("type")
    if msg_type == "Results":
        alternatives = (payload.get("channel") or {}).get("alternatives") or [{}]
        best = alternatives[0]
        fragment = TranscriptFragment(
            text=best.get("transcript") or "",
            is_final=bool(payload.get("is_final")),
            confidence=best.get("confidence"),
            start=payload.get("start"),
            duration=payload.get("duration"),
        )
        return TranscriptReceived(fragment)

    if msg_type == "Error":
        description = payload.get("description") or payload.get("message") or "unknown error"
        return StreamFailed(StreamError(f"Deepgram error: {description}"))

    if msg_type in _IGNORED_MESSAGE_TYPES:
        logger.debug(f"Deepgram {msg_type} message")
    else:
        logger.debug(f"Ignoring unknown Deepgram message type: {msg_type}")
    return None
