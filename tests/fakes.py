import json

import httpx

from askline.transport import TransportResponse


def sse(*documents, event: str | None = None) -> bytes:
    lines = []
    if event is not None:
        lines.append(f"event: {event}")
    for doc in documents:
        payload = doc if isinstance(doc, str) else json.dumps(doc)
        lines.append(f"data: {payload}")
    return ("\n".join(lines) + "\n").encode("utf-8")


def chunks_doc(*chunks: str, **extra) -> dict:
    doc = {
        "blocks": [
            {"intended_usage": "ask_text", "markdown_block": {"chunks": list(chunks)}}
        ]
    }
    doc.update(extra)
    return doc


def answer_doc(answer: str, **extra) -> dict:
    doc = {
        "blocks": [
            {"intended_usage": "ask_text", "markdown_block": {"answer": answer, "chunks": []}}
        ]
    }
    doc.update(extra)
    return doc


def handshake_ok(cookies=("pplx.visitor-id=abc; Path=/; HttpOnly", "__cf_bm=xyz; Secure")):
    return TransportResponse(
        status=200,
        headers=httpx.Headers([("set-cookie", c) for c in cookies]),
        body=b"<html></html>",
    )


def stream_ok(*chunks: bytes) -> TransportResponse:
    return TransportResponse(status=200, stream=list(chunks))


class FakeTransport:
    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests: list[dict] = []
        self.initialized = False
        self.close_calls = 0

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    def initialize(self) -> None:
        self.initialized = True

    def request(self, url, method="GET", headers=None, body=None, stream=False):
        self.requests.append(
            {"url": url, "method": method, "headers": headers or {}, "body": body, "stream": stream}
        )
        if not self.responses:
            raise AssertionError(f"Unexpected request to {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.close_calls += 1
