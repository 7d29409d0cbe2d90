# idmerge/ocr/baidu.py
# ============================================================
# Baidu OCR Client — Recognition Capability over HTTP
# ============================================================
# Talks to the Baidu AI Cloud OCR REST API with httpx:
#   1. Obtain an OAuth access token (client-credentials grant)
#   2. POST the base64 image to the endpoint chosen by the hint
#   3. Map the JSON answer into FrontFields / BackFields
#
# Every failure leaves this module as a RecognitionError whose
# kind drives the gateway's retry policy. On an auth failure the
# cached token is dropped so the next attempt fetches a new one.
#
# Usage:
#   client = BaiduOcrClient.from_settings()
#   gateway = RecognitionGateway(client)
#   ...
#   await client.aclose()
# ============================================================

import asyncio
from typing import Optional

import httpx

from config.settings import settings
from idmerge.errors import ConfigurationError, RecognitionError, RecognitionErrorKind
from idmerge.ocr.hints import RecognitionHint, get_endpoint
from idmerge.ocr.mapping import map_response
from idmerge.ocr.results import ExtractionResult
from idmerge.utils.image import encode_image_base64
from idmerge.utils.logger import get_logger
from idmerge.validation.rules import DEFAULT_RULES, RuleTable

logger = get_logger(__name__)


class BaiduOcrClient:
    """
    RecognitionCapability backed by the Baidu OCR REST API.

    The client owns one httpx.AsyncClient and a cached access token.
    It does not retry; retries belong to RecognitionGateway.
    """

    def __init__(
        self,
        api_key: str,
        secret_key: str,
        token_url: Optional[str] = None,
        api_base: Optional[str] = None,
        rules: RuleTable = DEFAULT_RULES,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key or not secret_key:
            raise ConfigurationError(
                "Recognition credentials are missing: set BAIDU_API_KEY and BAIDU_SECRET_KEY"
            )

        self.api_key = api_key
        self.secret_key = secret_key
        self.token_url = token_url or settings.baidu_token_url
        self.api_base = (api_base or settings.baidu_api_base).rstrip("/")
        self.rules = rules

        # The gateway enforces the per-attempt timeout; keep httpx's a bit looser
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.recognition_timeout_s + 5.0)
        )
        self._token: Optional[str] = None
        self._token_lock = asyncio.Lock()

        logger.info(f"BaiduOcrClient initialized — endpoint base: [bold]{self.api_base}[/bold]")

    @classmethod
    def from_settings(cls, rules: RuleTable = DEFAULT_RULES) -> "BaiduOcrClient":
        return cls(
            api_key=settings.baidu_api_key,
            secret_key=settings.baidu_secret_key,
            rules=rules,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def invalidate_token(self) -> None:
        self._token = None

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token:
                return self._token

            params = {
                "grant_type": "client_credentials",
                "client_id": self.api_key,
                "client_secret": self.secret_key,
            }
            payload = await self._post_json(self.token_url, params=params)
            token = payload.get("access_token")
            if not token:
                description = payload.get("error_description") or payload.get("error") or "no token"
                raise RecognitionError(
                    RecognitionErrorKind.AUTH, f"access token request failed: {description}"
                )
            self._token = token
            logger.debug("Fetched a new Baidu access token")
            return token

    async def _post_json(self, url: str, **kwargs) -> dict:
        try:
            response = await self._client.post(url, **kwargs)
        except httpx.TransportError as e:
            raise RecognitionError(RecognitionErrorKind.TRANSIENT, f"network error: {e}") from e

        if response.status_code in (401, 403):
            raise RecognitionError(RecognitionErrorKind.AUTH, f"HTTP {response.status_code}")
        if response.status_code >= 500 or response.status_code == 429:
            raise RecognitionError(RecognitionErrorKind.TRANSIENT, f"HTTP {response.status_code}")
        if response.status_code >= 400:
            raise RecognitionError(RecognitionErrorKind.INVALID, f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise RecognitionError(
                RecognitionErrorKind.TRANSIENT, "provider returned a non-JSON body"
            ) from e
        if not isinstance(payload, dict):
            raise RecognitionError(RecognitionErrorKind.TRANSIENT, "provider returned unexpected JSON")
        return payload

    async def recognize(self, image: bytes, hint: RecognitionHint) -> ExtractionResult:
        """Run one recognition call. Raises RecognitionError on any failure."""
        if not image:
            raise RecognitionError(RecognitionErrorKind.INVALID, "image is empty")

        endpoint = get_endpoint(hint)
        token = await self._access_token()

        form = dict(endpoint.params)
        form["image"] = encode_image_base64(image)

        try:
            payload = await self._post_json(
                f"{self.api_base}/{endpoint.path}",
                params={"access_token": token},
                data=form,
            )
            return map_response(payload, hint, self.rules)
        except RecognitionError as e:
            if e.kind == RecognitionErrorKind.AUTH:
                self.invalidate_token()
            raise
