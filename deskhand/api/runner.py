"""Agent runner -- drives the model/tool loop via direct Anthropic API.

One run: seed the transcript, then call the model, dispatch every
tool_use in order, append the results and repeat until the model stops
asking for tools, the iteration cap is reached, the model call fails
or the run is cancelled. Runs never raise; they return a RunResult.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

import httpx
from pydantic import ValidationError

from deskhand.api.models import (
    FALLBACK_FINAL_TEXT,
    ApiResponse,
    IterationState,
    RunResult,
    RunStatus,
)
from deskhand.api.tools import DispatchContext, ToolDispatcher
from deskhand.config import Settings
from deskhand.errors import SurfaceError, UpstreamError
from deskhand.process import CancelToken
from deskhand.surfaces import SurfaceProvider
from deskhand.transcript import ConversationManager, ImageBlock, ToolResultBlock, parse_block

logger = logging.getLogger(__name__)

# Anthropic API version header
_API_VERSION = "2023-06-01"

NOT_INITIALIZED_ERROR = (
    "Anthropic client not initialized. Please configure your API key in settings."
)
MALFORMED_RESPONSE_ERROR = "Malformed API response"


class AgentRunner:
    """Runs instructions against the model with the built-in tools.

    Uses direct httpx calls to the Anthropic Messages API. Only one run
    executes at a time; concurrent callers queue on an internal lock.
    """

    def __init__(
        self,
        settings: Settings,
        dispatcher: ToolDispatcher,
        surfaces: SurfaceProvider,
    ) -> None:
        self._settings = settings
        self._dispatcher = dispatcher
        self._surfaces = surfaces
        self._http: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._http is not None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def start(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize the httpx client with auth and timeout settings.

        Without credentials the client is left uninitialized and runs
        fail fast with NOT_INITIALIZED_ERROR.
        """
        settings = self._settings
        api_key = settings.anthropic_api_key or ""
        auth_token = settings.anthropic_auth_token or ""
        if not (api_key or auth_token):
            logger.warning(
                "Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set -- "
                "runs will fail until a key is configured"
            )
            return

        headers: dict[str, str] = {
            "anthropic-version": _API_VERSION,
            "anthropic-beta": settings.computer_use_beta,
            "content-type": "application/json",
        }
        # auth_token (Bearer) wins over api_key (x-api-key)
        if auth_token:
            headers["authorization"] = f"Bearer {auth_token}"
        else:
            headers["x-api-key"] = api_key

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        logger.info("httpx client initialized (auth: %s)", "Bearer token" if auth_token else "API key")

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    async def reinitialize(self, api_key: str) -> None:
        """Rebuild the client after a credential change."""
        await self.close()
        self._settings.anthropic_api_key = api_key
        self._settings.anthropic_auth_token = ""
        await self.start()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        instruction: str,
        *,
        attach_screenshot: bool = False,
        surface_id: str | None = None,
        cancel: CancelToken | None = None,
    ) -> RunResult:
        """Execute one instruction to completion. Never raises."""
        async with self._lock:
            return await self._run(instruction, attach_screenshot, surface_id, cancel or CancelToken())

    async def _run(
        self,
        instruction: str,
        attach_screenshot: bool,
        surface_id: str | None,
        cancel: CancelToken,
    ) -> RunResult:
        run_id = uuid.uuid4().hex[:12]
        manager = ConversationManager()
        state = IterationState(cap=self._settings.max_iterations)

        if self._http is None:
            manager.seed(instruction)
            return self._finish(manager, state, RunStatus.DONE_ERROR, error=NOT_INITIALIZED_ERROR)

        image = None
        if attach_screenshot:
            try:
                capture = await asyncio.to_thread(self._surfaces.capture, surface_id)
            except Exception as e:
                if not isinstance(e, SurfaceError):
                    logger.exception("Run %s: unexpected screenshot failure", run_id)
                manager.seed(instruction)
                return self._finish(
                    manager,
                    state,
                    RunStatus.DONE_ERROR,
                    error=f"Failed to capture screenshot: {str(e) or type(e).__name__}",
                )
            image = ImageBlock(data=capture.data, media_type=capture.media_type)
        manager.seed(instruction, image)

        tools = self._dispatcher.tool_definitions()
        logger.info("Run %s started (cap %d, screenshot %s)", run_id, state.cap, image is not None)

        while True:
            if cancel.cancelled:
                return self._finish(manager, state, RunStatus.DONE_CANCELLED, error="Run cancelled")

            try:
                response = await self._call_api(manager.transcript.to_messages(), tools)
            except UpstreamError as e:
                logger.error("Run %s aborted by model call failure: %s", run_id, e)
                return self._finish(manager, state, RunStatus.DONE_ERROR, error=str(e))

            try:
                blocks = [parse_block(raw) for raw in response.content]
            except (AttributeError, KeyError, TypeError, ValidationError) as e:
                logger.error("Run %s: malformed block in model response: %r", run_id, e)
                return self._finish(manager, state, RunStatus.DONE_ERROR, error=MALFORMED_RESPONSE_ERROR)
            manager.append_assistant(blocks)
            tool_uses = manager.pending_tool_uses()
            if not tool_uses:
                final_text = manager.transcript.last.first_text() or FALLBACK_FINAL_TEXT
                return self._finish(manager, state, RunStatus.DONE_NO_TOOLS, final_text=final_text)

            # Sequential, in transcript order: actions share one pointer/keyboard stream
            results: list[ToolResultBlock] = []
            for use in tool_uses:
                if cancel.cancelled:
                    break
                context = DispatchContext(iteration=state.count + 1, run_id=run_id, cancel=cancel)
                results.append(await self._dispatcher.dispatch(use, context))
            manager.append_tool_results(results)
            state.count += 1

            if cancel.cancelled:
                return self._finish(manager, state, RunStatus.DONE_CANCELLED, error="Run cancelled")
            if state.exhausted:
                logger.warning("Run %s reached maximum iterations (%d)", run_id, state.cap)
                return self._finish(
                    manager,
                    state,
                    RunStatus.DONE_BUDGET_EXHAUSTED,
                    error=f"Reached maximum iterations ({state.cap}) without completing the task",
                )

    def _finish(
        self,
        manager: ConversationManager,
        state: IterationState,
        status: RunStatus,
        *,
        final_text: str | None = None,
        error: str | None = None,
    ) -> RunResult:
        state.status = status
        logger.info("Run finished: %s after %d iteration(s)", status.value, state.count)
        return RunResult(
            success=status is RunStatus.DONE_NO_TOOLS,
            status=status,
            transcript=manager.transcript,
            iterations=state.count,
            final_text=final_text,
            error=error,
        )

    # ------------------------------------------------------------------
    # API call
    # ------------------------------------------------------------------

    def _build_api_payload(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Build Anthropic Messages API request payload."""
        settings = self._settings
        payload: dict[str, Any] = {
            "model": settings.model,
            "max_tokens": settings.max_tokens,
            "messages": messages,
        }
        if settings.system_prompt:
            payload["system"] = settings.system_prompt
        if tools:
            payload["tools"] = tools
        if settings.thinking_budget:
            payload["thinking"] = {"type": "enabled", "budget_tokens": settings.thinking_budget}
        return payload

    async def _call_api(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> ApiResponse:
        """Call Anthropic Messages API with retry for 429/500/529.

        Returns parsed ApiResponse with content blocks and stop_reason.
        Raises UpstreamError on persistent errors.
        """
        if not self._http:
            raise UpstreamError(NOT_INITIALIZED_ERROR)

        payload = self._build_api_payload(messages, tools)
        logger.debug("Calling model with %d message(s)", len(messages))

        # Simple retry: 1x for 429/500/529
        last_error: UpstreamError | None = None
        for attempt in range(2):  # max 2 attempts (initial + 1 retry)
            try:
                response = await self._http.post("/v1/messages", json=payload)

                if response.status_code == 200:
                    try:
                        data = response.json()
                    except ValueError as e:
                        raise UpstreamError(f"Malformed API response: {e}") from e
                    return ApiResponse(
                        content=data.get("content") or [],
                        stop_reason=data.get("stop_reason") or "",
                        usage=data.get("usage"),
                    )

                # Parse error body
                try:
                    error_data = response.json()
                    error_type = error_data.get("error", {}).get("type", "unknown")
                    error_msg = error_data.get("error", {}).get("message", "unknown error")
                except ValueError:
                    error_type = "http_error"
                    error_msg = f"HTTP {response.status_code}: {response.text[:500]}"

                # Retry on 429 (rate limit) or 500/529 (server error)
                if response.status_code in (429, 500, 529) and attempt == 0:
                    try:
                        retry_after = float(response.headers.get("retry-after", "1"))
                    except ValueError:
                        retry_after = 1.0
                    retry_after = min(retry_after, 30.0)  # Cap at 30s
                    logger.warning(
                        "API error %d (%s), retrying in %.1fs: %s",
                        response.status_code,
                        error_type,
                        retry_after,
                        error_msg,
                    )
                    await asyncio.sleep(retry_after)
                    continue

                last_error = UpstreamError(
                    f"Anthropic API error ({response.status_code}): "
                    f"{error_type} - {error_msg}"
                )
                break

            except httpx.TimeoutException as e:
                last_error = UpstreamError(f"API request timed out: {e}")
                if attempt == 0:
                    logger.warning("API timeout, retrying: %s", e)
                    await asyncio.sleep(1)
                    continue
            except httpx.HTTPError as e:
                last_error = UpstreamError(f"HTTP error: {e}")
                break  # Don't retry connection errors

        raise last_error or UpstreamError("API call failed with unknown error")
