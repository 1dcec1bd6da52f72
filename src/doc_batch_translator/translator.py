import asyncio
import json
import logging

import httpx
from pydantic import ValidationError

from doc_batch_translator.config import settings
from doc_batch_translator.schemas import ErrorDetail, JobStatus, SubmissionRequest

logger = logging.getLogger(__name__)

AUTH_HEADER = "Ocp-Apim-Subscription-Key"


class TranslatorError(RuntimeError):
    pass


class CredentialsError(TranslatorError):
    def __init__(self, missing: str) -> None:
        self.missing = missing
        super().__init__(f"{missing} is not set")


class SubmissionError(TranslatorError):
    """The service rejected the request body. Not retried."""

    def __init__(self, detail: ErrorDetail) -> None:
        self.detail = detail
        super().__init__(f"translation request rejected: {detail}")


class StatusQueryError(TranslatorError):
    pass


def require_credentials(storage: bool = True) -> None:
    if not settings.translator_resource_name:
        raise CredentialsError("TRANSLATOR_RESOURCE_NAME")
    if not settings.translator_key:
        raise CredentialsError("TRANSLATOR_KEY")
    if storage and not settings.storage_connection_string:
        raise CredentialsError("STORAGE_CONNECTION_STRING")


def parse_error_detail(response: httpx.Response) -> ErrorDetail:
    try:
        body = response.json()
    except json.JSONDecodeError:
        return ErrorDetail(code=str(response.status_code), message=response.text[:500])
    payload = body.get("error", body) if isinstance(body, dict) else {}
    try:
        return ErrorDetail.model_validate(payload)
    except ValidationError:
        return ErrorDetail(code=str(response.status_code), message=response.text[:500])


class TranslatorClient:
    """Talks to the batch document translation endpoint.

    One instance is shared by all runs; it holds no per-run state.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.translator_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.translator_key
        if not self.api_key:
            raise CredentialsError("TRANSLATOR_KEY")
        self._http = httpx.AsyncClient(
            timeout=settings.http_timeout_sec,
            headers={AUTH_HEADER: self.api_key},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "TranslatorClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self._http.get(url, **kwargs)

    async def submit(self, request: SubmissionRequest) -> str | None:
        """POST the request and return the job status URL.

        Returns None when every attempt failed transiently. Raises
        :class:`SubmissionError` on a 400, without retrying.
        """
        body = request.to_wire()
        logger.debug("Submitting translation request: %s", body)
        for attempt in range(settings.submit_attempts):
            try:
                r = await self._http.post(f"{self.base_url}/batches", json=body)
            except httpx.TransportError as exc:
                logger.warning("Translation request attempt %d failed: %s", attempt + 1, exc)
                await asyncio.sleep(settings.submit_backoff_sec)
                continue
            logger.info("Translation request attempt %d: HTTP %d", attempt + 1, r.status_code)
            if r.is_success:
                location = r.headers.get("Operation-Location")
                if location:
                    return location
                logger.warning("Translation request accepted without Operation-Location header")
                continue
            if r.status_code == 400:
                raise SubmissionError(parse_error_detail(r))
            logger.warning("Translation request failed with HTTP %d: %s", r.status_code, r.text[:500])
            await asyncio.sleep(settings.submit_backoff_sec)
        return None

    async def _job_call(self, method: str, job_url: str) -> JobStatus:
        r = await self._http.request(method, job_url)
        if not r.is_success:
            raise StatusQueryError(f"http_{r.status_code}: {parse_error_detail(r)}")
        try:
            status = JobStatus.model_validate(r.json())
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StatusQueryError(f"invalid_status_body: {r.text[:250]}") from exc
        logger.debug("Job %s: status=%s inProgress=%d", status.id, status.status, status.summary.in_progress)
        return status

    async def get_status(self, job_url: str) -> JobStatus:
        return await self._job_call("GET", job_url)

    async def cancel(self, job_url: str) -> JobStatus:
        """Ask the service to cancel the job. The poll loop sees the outcome on its next query."""
        return await self._job_call("DELETE", job_url)
