import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Optional, Union
from urllib.parse import urljoin

import aiohttp
from loguru import logger
from yarl import URL

from drawing_api_client.credentials import (
    DEFAULT_CREDENTIALS_PATH,
    resolve_credential,
    validate_credential,
)
from drawing_api_client.dispatcher import RateLimitedDispatcher, classify_response
from drawing_api_client.errors import ApiError, ConfigurationError, TransportError
from drawing_api_client.models import (
    CompanyInfo,
    JobKind,
    PollingConfig,
    PollOutcome,
    RetryConfig,
    StackCredential,
)
from drawing_api_client.poller import JobPoller
from drawing_api_client.signer import RequestSigner

LONG_TIMEOUT = aiohttp.ClientTimeout(total=600)


class ApiClient:
    """Signed client for the drawing REST api of one stack

    Every attempt is signed afresh and rate-limited responses are retried with a
    backoff that persists for the lifetime of the client.
    """

    def __init__(
        self,
        credential: StackCredential,
        stack_name: Optional[str] = None,
        script_name: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        polling_config: Optional[PollingConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Optional[Callable] = None,
    ):
        credential = validate_credential(credential)
        self.credential = credential
        self.stack_name = stack_name
        self.base_url = credential.url
        self.signer = RequestSigner(
            credential.access_key,
            credential.secret_key,
            company_id=credential.company_id,
            script_name=script_name,
        )
        sleep = sleep or asyncio.sleep
        self.dispatcher = RateLimitedDispatcher(retry_config, sleep=sleep)
        self.poller = JobPoller(polling_config, sleep=sleep)
        self.logger = logger
        self._session = session
        self._owns_session = session is None

    @classmethod
    def create(
        cls,
        stack: Optional[str] = None,
        credentials_path: Union[str, Path] = DEFAULT_CREDENTIALS_PATH,
        **kwargs: Any,
    ) -> "ApiClient":
        """Build a client from the credentials file, before any network activity"""
        stack_name, credential = resolve_credential(stack, credentials_path)
        logger.info(f"Creating api client against stack={stack_name} url={credential.url}")
        return cls(credential, stack_name=stack_name, **kwargs)

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def get_base_url(self) -> str:
        return self.base_url

    def _full_uri(self, api_path: str) -> str:
        if api_path.startswith("http"):
            return api_path
        return urljoin(self.base_url, api_path)

    @staticmethod
    def _decode(response: aiohttp.ClientResponse, raw: bytes) -> Any:
        if not raw:
            return None
        text = raw.decode(response.charset or "utf-8")
        if "json" in response.content_type:
            try:
                return json.loads(text)
            except json.JSONDecodeError as e:
                raise ApiError(response.status, f"Malformed json response: {e}", text) from e
        return text

    async def _send_once(
        self,
        method: str,
        uri: str,
        body: Any = None,
        accept: Optional[str] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        binary: bool = False,
    ) -> Any:
        """Sign and send exactly one attempt"""
        signed = self.signer.sign(method, uri, accept=accept)
        session = await self._get_session()
        data = json.dumps(body).encode("utf-8") if body is not None else None
        kwargs = {"timeout": timeout} if timeout is not None else {}

        try:
            async with session.request(
                method,
                URL(signed.url, encoded=True),
                headers=signed.headers,
                data=data,
                **kwargs,
            ) as response:
                raw = await response.read()
                api_error = classify_response(
                    response.status,
                    response.reason,
                    body=raw.decode("utf-8", errors="replace"),
                )
                if api_error:
                    self.logger.error(f"{method} {signed.url} failed: {api_error}")
                    raise api_error
                if binary:
                    return raw
                return self._decode(response, raw)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Transport error on {method} {signed.url}: {e!r}")
            raise TransportError(str(e) or type(e).__name__) from e

    async def _call_api_verb(
        self,
        api_path: str,
        method: str,
        body: Any = None,
        accept: Optional[str] = None,
    ) -> Any:
        uri = self._full_uri(api_path)
        self.logger.info(f"Calling {method} {uri}")
        timeout = LONG_TIMEOUT if body is not None else None
        return await self.dispatcher.execute(
            lambda: self._send_once(method, uri, body=body, accept=accept, timeout=timeout)
        )

    async def get(self, api_path: str, accept: Optional[str] = None) -> Any:
        return await self._call_api_verb(api_path, "GET", accept=accept)

    async def post(self, api_path: str, body: Any) -> Any:
        return await self._call_api_verb(api_path, "POST", body=body)

    async def delete(self, api_path: str) -> Any:
        return await self._call_api_verb(api_path, "DELETE")

    async def download_file(self, api_path: str, destination: Union[str, Path]) -> Path:
        """Download binary content to destination, allowing up to ten minutes"""
        uri = self._full_uri(api_path)
        destination = Path(destination)
        self.logger.debug(f"Downloading {uri} to {destination}")
        content = await self.dispatcher.execute(
            lambda: self._send_once("GET", uri, timeout=LONG_TIMEOUT, binary=True)
        )
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(content)
        return destination

    async def find_company_info(self, company_id: Optional[str] = None) -> CompanyInfo:
        response = await self.get("/api/companies") or {}
        companies = [CompanyInfo.model_validate(c) for c in response.get("items") or []]
        company_id = company_id or self.credential.company_id
        if company_id:
            companies = [c for c in companies if c.id == company_id]

        if not companies:
            raise ConfigurationError("No company membership found")
        if len(companies) > 1:
            raise ConfigurationError(
                "User is member of multiple companies. Please specify --company-id"
            )
        return companies[0]

    async def wait_for_job(
        self,
        status_path: str,
        kind: Optional[JobKind] = None,
        timeout_seconds: Optional[float] = None,
        interval_ms: Optional[int] = None,
    ) -> PollOutcome:
        """Poll status_path through this client until the job is terminal"""
        return await self.poller.await_terminal(
            lambda: self.get(status_path),
            kind=kind,
            timeout_seconds=timeout_seconds,
            interval_ms=interval_ms,
        )
