"""Incremental decoder for the ask endpoint's event stream.

The service pushes ``event:`` / ``data:`` lines separated by ``\\n``. Each
``data:`` line carries a JSON document; answer text lives in ``blocks`` whose
``intended_usage`` is ``ask_text``. Depending on the update, a block carries
either a list of new ``chunks`` or a cumulative ``answer`` snapshot.
"""

import codecs
import json
import logging
from typing import Callable, Iterable

from askline.errors import StreamError
from askline.models import Response

logger = logging.getLogger(__name__)

ANSWER_USAGE = "ask_text"
MESSAGE_EVENT = "message"

TokenCallback = Callable[[str], None]


class StreamParser:
    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event = ""
        self._answer: list[str] = []
        self._answer_length = 0
        self.thread_url_slug = ""
        self.read_write_token = ""
        self.skipped_lines = 0

    @property
    def answer(self) -> str:
        return "".join(self._answer)

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one chunk and return the tokens completed by it."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        tokens: list[str] = []
        for line in lines:
            tokens.extend(self._handle_line(line))
        return tokens

    def flush(self) -> list[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return self._handle_line(tail)

    def finish(self) -> Response:
        answer = self.answer
        return Response(
            success=True,
            answer=answer,
            thread_url_slug=self.thread_url_slug,
            read_write_token=self.read_write_token,
            full_response_length=len(answer),
        )

    def _handle_line(self, raw: str) -> list[str]:
        line = raw.rstrip("\r").strip()
        if not line:
            return []
        if line.startswith("event:"):
            self._event = line[len("event:"):].strip()
            return []
        if not line.startswith("data:"):
            return []
        payload = line[len("data:"):].strip()
        if payload == "{}":
            return []
        try:
            data = json.loads(payload)
        except ValueError:
            self.skipped_lines += 1
            return []
        if not isinstance(data, dict):
            return []

        if data.get("thread_url_slug"):
            self.thread_url_slug = data["thread_url_slug"]
        if data.get("read_write_token"):
            self.read_write_token = data["read_write_token"]

        if self._event and self._event != MESSAGE_EVENT:
            return []
        return self._extract(data.get("blocks"))

    def _extract(self, blocks) -> list[str]:
        if not isinstance(blocks, list):
            return []
        tokens: list[str] = []
        for block in blocks:
            if not isinstance(block, dict) or block.get("intended_usage") != ANSWER_USAGE:
                continue
            markdown = block.get("markdown_block")
            if not isinstance(markdown, dict):
                continue
            chunks = markdown.get("chunks")
            if isinstance(chunks, list) and chunks:
                for chunk in chunks:
                    if isinstance(chunk, str):
                        tokens.append(self._accept(chunk))
                continue
            snapshot = markdown.get("answer")
            if isinstance(snapshot, str) and len(snapshot) > self._answer_length:
                tokens.append(self._accept(snapshot[self._answer_length:]))
        return tokens

    def _accept(self, token: str) -> str:
        self._answer.append(token)
        self._answer_length += len(token)
        return token


def parse_stream(
    chunks: Iterable[bytes],
    on_token: TokenCallback | None = None,
    parser: StreamParser | None = None,
) -> Response:
    """Drive a parser over a live byte stream, forwarding tokens as they arrive.

    Faults raised while reading ``chunks`` become :class:`StreamError`.
    Exceptions from ``on_token`` propagate unchanged.
    """
    parser = parser or StreamParser()
    iterator = iter(chunks)
    while True:
        try:
            chunk = next(iterator)
        except StopIteration:
            break
        except Exception as e:
            raise StreamError(f"Stream error: {e}") from e
        for token in parser.feed(chunk):
            if on_token is not None:
                on_token(token)
    for token in parser.flush():
        if on_token is not None:
            on_token(token)
    if parser.skipped_lines:
        logger.debug(f"Skipped {parser.skipped_lines} malformed stream lines")
    return parser.finish()
