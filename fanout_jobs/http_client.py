"""HTTP client for a remote pipeline service."""

from typing import Any, Dict, Optional

import aiohttp

from fanout_jobs.errors import RemoteHttpError
from fanout_jobs.models import Message

TOKEN_HEADER = "X-Fanout-Jobs-Token"


class PipelineHttpClient:
    """HTTP client for calling the pipeline router of another process."""

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Base URL of the pipeline service (e.g., "https://jobs.internal")
            auth_token: Optional auth token for the X-Fanout-Jobs-Token header
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def invoke_worker(self, message: Message) -> Dict[str, Any]:
        """
        Hand one message to the remote worker endpoint.

        The endpoint accepts the message and processes it in the background,
        so this returns as soon as the hand-off is acknowledged.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        return await self._post(
            "/jobs/worker", message.to_dict(), "Failed to invoke worker"
        )

    async def trigger_run(
        self,
        *,
        tenant_id: Optional[str] = None,
        job_key: Optional[str] = None,
        force: bool = False,
    ) -> Dict[str, Any]:
        """
        Trigger an enqueue pass, or a direct run for one tenant.

        Returns:
            The enqueue summary or worker result as a dictionary

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        request_body: Dict[str, Any] = {"force": force}
        if tenant_id:
            request_body["tenant_id"] = tenant_id
        if job_key:
            request_body["job_key"] = job_key

        return await self._post("/jobs/run", request_body, "Failed to trigger run")

    async def trigger_dispatch(self) -> Dict[str, Any]:
        """
        Trigger one dispatch pass.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        return await self._post("/jobs/dispatch", {}, "Failed to trigger dispatch")

    async def get_status(self) -> Dict[str, Any]:
        """
        Get queue depth and age for the primary and dead-letter queues.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        url = f"{self.base_url}/jobs/status"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.get(url, headers=self._headers()) as resp:
                    response_body = await resp.text()

                    if resp.status >= 400:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"Failed to get status: {response_body}",
                            response_body=response_body,
                        )

                    return await resp.json()

            except aiohttp.ClientError as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e)}",
                ) from e

    async def _post(self, path: str, request_body: Dict[str, Any], failure: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = self._headers()
        headers["Content-Type"] = "application/json"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.post(url, json=request_body, headers=headers) as resp:
                    response_body = await resp.text()

                    if resp.status >= 400:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"{failure}: {response_body}",
                            response_body=response_body,
                        )

                    return await resp.json()

            except aiohttp.ClientError as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e)}",
                ) from e

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.auth_token:
            headers[TOKEN_HEADER] = self.auth_token
        return headers
