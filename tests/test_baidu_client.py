# tests/test_baidu_client.py
# ============================================================
# Unit Tests — Baidu OCR Client
# ============================================================
# Tests the HTTP client against httpx.MockTransport (no network):
# token handling, request shape, and the translation of HTTP and
# provider failures into recognition error kinds.
# ============================================================

import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from idmerge.errors import ConfigurationError, RecognitionError, RecognitionErrorKind
from idmerge.ocr.baidu import BaiduOcrClient
from idmerge.ocr.hints import RecognitionHint
from idmerge.ocr.results import BackFields, FrontFields

TOKEN_URL = "https://auth.test/oauth/2.0/token"
API_BASE = "https://ocr.test/rest/2.0/ocr/v1"

FRONT_WORDS = {
    "words_result": {
        "姓名": {"words": "李雷"},
        "公民身份号码": {"words": "11010119900101001X"},
        "性别": {"words": "男"},
        "民族": {"words": "汉"},
        "出生": {"words": "19900101"},
        "住址": {"words": "北京市东城区"},
    },
    "image_status": "normal",
}


class FakeBaidu:
    """Request handler for httpx.MockTransport that records traffic."""

    def __init__(self, ocr_responses=None):
        self.ocr_responses = list(ocr_responses or [httpx.Response(200, json=FRONT_WORDS)])
        self.token_requests = 0
        self.ocr_requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/token"):
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": f"token-{self.token_requests}"})

        self.ocr_requests.append(request)
        response = self.ocr_responses.pop(0) if len(self.ocr_responses) > 1 else self.ocr_responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_client(handler) -> BaiduOcrClient:
    return BaiduOcrClient(
        api_key="key",
        secret_key="secret",
        token_url=TOKEN_URL,
        api_base=API_BASE,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def run(client: BaiduOcrClient, *calls):
    """Run recognize calls one after another and close the client."""

    async def _run():
        try:
            return [await client.recognize(image, hint) for image, hint in calls]
        finally:
            await client.aclose()

    return asyncio.run(_run())


def form_of(request: httpx.Request) -> dict:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


# ============================================================
# Successful Calls
# ============================================================

class TestBaiduRequests:
    """Test request shape and token caching."""

    def test_front_recognition(self):
        handler = FakeBaidu()
        [result] = run(make_client(handler), (b"jpeg-bytes", RecognitionHint.FRONT))

        assert isinstance(result, FrontFields)
        assert result.name == "李雷"

        request = handler.ocr_requests[0]
        assert str(request.url).startswith(f"{API_BASE}/idcard")
        assert request.url.params["access_token"] == "token-1"
        form = form_of(request)
        assert form["id_card_side"] == "front"
        assert form["image"] == "anBlZy1ieXRlcw=="

    def test_token_is_cached(self):
        handler = FakeBaidu()
        run(
            make_client(handler),
            (b"a", RecognitionHint.FRONT),
            (b"b", RecognitionHint.FRONT),
        )
        assert handler.token_requests == 1
        assert len(handler.ocr_requests) == 2

    def test_combined_uses_general_endpoint(self):
        handler = FakeBaidu([httpx.Response(200, json={"words_result": [
            {"words": "中华人民共和国"},
            {"words": "居民身份证"},
        ]})])
        [result] = run(make_client(handler), (b"a", RecognitionHint.COMBINED))

        assert isinstance(result, BackFields)
        assert result.keyword_hits == frozenset({"中华人民共和国", "居民身份证"})
        assert handler.ocr_requests[0].url.path.endswith("/general_basic")


# ============================================================
# Failure Translation
# ============================================================

class TestBaiduFailures:
    """Test HTTP/provider failures become the right error kind."""

    @pytest.mark.parametrize("response, kind", [
        (httpx.Response(503), RecognitionErrorKind.TRANSIENT),
        (httpx.Response(429), RecognitionErrorKind.TRANSIENT),
        (httpx.Response(401), RecognitionErrorKind.AUTH),
        (httpx.Response(400), RecognitionErrorKind.INVALID),
        (httpx.Response(200, text="<html>busy</html>"), RecognitionErrorKind.TRANSIENT),
        (httpx.Response(200, json={"error_code": 18, "error_msg": "Open api qps request limit reached"}),
         RecognitionErrorKind.TRANSIENT),
        (httpx.Response(200, json={"error_code": 216201, "error_msg": "image format error"}),
         RecognitionErrorKind.INVALID),
    ])
    def test_error_kinds(self, response, kind):
        with pytest.raises(RecognitionError) as exc_info:
            run(make_client(FakeBaidu([response])), (b"a", RecognitionHint.FRONT))
        assert exc_info.value.kind == kind

    def test_network_error_is_transient(self):
        handler = FakeBaidu([httpx.ConnectError("connection refused")])
        with pytest.raises(RecognitionError) as exc_info:
            run(make_client(handler), (b"a", RecognitionHint.FRONT))
        assert exc_info.value.kind == RecognitionErrorKind.TRANSIENT

    def test_auth_error_drops_token(self):
        """After an expired-token error the next call fetches a fresh token."""
        handler = FakeBaidu([
            httpx.Response(200, json={"error_code": 111, "error_msg": "Access token expired"}),
            httpx.Response(200, json=FRONT_WORDS),
        ])
        client = make_client(handler)

        async def _run():
            try:
                with pytest.raises(RecognitionError) as exc_info:
                    await client.recognize(b"a", RecognitionHint.FRONT)
                assert exc_info.value.kind == RecognitionErrorKind.AUTH
                return await client.recognize(b"a", RecognitionHint.FRONT)
            finally:
                await client.aclose()

        result = asyncio.run(_run())

        assert isinstance(result, FrontFields)
        assert handler.token_requests == 2
        assert handler.ocr_requests[1].url.params["access_token"] == "token-2"

    def test_token_endpoint_without_token_is_auth(self):
        def handler(request):
            return httpx.Response(200, json={"error": "invalid_client", "error_description": "unknown client id"})

        with pytest.raises(RecognitionError) as exc_info:
            run(make_client(handler), (b"a", RecognitionHint.FRONT))
        assert exc_info.value.kind == RecognitionErrorKind.AUTH
        assert "unknown client id" in exc_info.value.message

    def test_empty_image_is_invalid(self):
        handler = FakeBaidu()
        with pytest.raises(RecognitionError) as exc_info:
            run(make_client(handler), (b"", RecognitionHint.FRONT))
        assert exc_info.value.kind == RecognitionErrorKind.INVALID
        assert handler.token_requests == 0

    def test_missing_credentials(self):
        with pytest.raises(ConfigurationError):
            BaiduOcrClient(api_key="", secret_key="secret")
