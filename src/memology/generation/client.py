"""HTTP client for the external meme generation service."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_TEMPLATE_SIZE = 512
_SUBMIT_OK_CODES = (200, 201, 202)
_ERROR_BODY_PREVIEW_CHARS = 500


class GenerationServiceError(RuntimeError):
    """Generation service call failed, with a retryability hint."""

    def __init__(
        self,
        message: str,
        *,
        transient: bool,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code


@dataclass(slots=True)
class TaskStatus:
    """Raw task status as reported by the service."""

    task_id: str
    status: str
    result_path: str | None = None


@dataclass(slots=True)
class TemplateMeme:
    """Synchronously rendered template meme."""

    url: str
    template: str
    text: list[str] = field(default_factory=list)


class GenerationClient:
    """Blocking httpx wrapper around the generation service REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport or httpx.HTTPTransport(retries=max_retries),
        )

    def submit(self, prompt: str, style: str = "") -> str:
        """Start a generation; return the service task id."""

        body: dict[str, str] = {"user_input": prompt}
        if style:
            body["style"] = style
        response = self._request("POST", "/api/memes/generate", expected=_SUBMIT_OK_CODES, json=body)
        payload = _json_object(response)
        task_id = payload.get("task_id")
        if not isinstance(task_id, str) or not task_id:
            raise GenerationServiceError(
                "Generation service response has no task_id.",
                transient=False,
                status_code=response.status_code,
            )
        return task_id

    def task_status(self, task_id: str) -> TaskStatus:
        response = self._request("GET", f"/api/memes/task/{quote(task_id, safe='')}")
        payload = _json_object(response)
        status = payload.get("status")
        if not isinstance(status, str):
            raise GenerationServiceError(
                f"Generation service returned no status for task {task_id}.",
                transient=False,
                status_code=response.status_code,
            )
        result_path = payload.get("result_path")
        return TaskStatus(
            task_id=str(payload.get("task_id") or task_id),
            status=status,
            result_path=result_path if isinstance(result_path, str) and result_path else None,
        )

    def poll_status(self, task_id: str) -> str:
        return self.task_status(task_id).status

    def fetch_result(self, task_id: str) -> bytes:
        response = self._request("GET", f"/api/memes/task/{quote(task_id, safe='')}/result")
        return response.content

    def available_styles(self) -> list[str]:
        """List style names; the service answers in one of three shapes."""

        response = self._request("GET", "/api/memes/styles")
        try:
            payload = response.json()
        except json.JSONDecodeError as error:
            raise GenerationServiceError(
                f"Failed to parse styles response: {response.text[:_ERROR_BODY_PREVIEW_CHARS]}",
                transient=False,
                status_code=response.status_code,
            ) from error
        styles = parse_styles_payload(payload)
        if styles is None:
            raise GenerationServiceError(
                f"Failed to parse styles response: {response.text[:_ERROR_BODY_PREVIEW_CHARS]}",
                transient=False,
                status_code=response.status_code,
            )
        return styles

    def generate_template(
        self,
        context: str,
        *,
        width: int = DEFAULT_TEMPLATE_SIZE,
        height: int = DEFAULT_TEMPLATE_SIZE,
    ) -> TemplateMeme:
        """Render a template meme synchronously."""

        response = self._request(
            "POST",
            "/api/memes/generate-template",
            json={
                "context": context,
                "width": width or DEFAULT_TEMPLATE_SIZE,
                "height": height or DEFAULT_TEMPLATE_SIZE,
            },
        )
        payload = _json_object(response)
        return TemplateMeme(
            url=str(payload.get("url") or ""),
            template=str(payload.get("template") or ""),
            text=_text_lines(payload.get("text")),
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GenerationClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        expected: tuple[int, ...] = (200,),
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as error:
            logger.warning("Timeout calling generation service %s %s", method, path)
            raise GenerationServiceError(
                f"Timeout calling generation service: {method} {path}",
                transient=True,
            ) from error
        except httpx.HTTPError as error:
            logger.warning("HTTP error calling generation service %s %s: %s", method, path, error)
            raise GenerationServiceError(
                f"Failed to reach generation service: {error}",
                transient=True,
            ) from error

        if response.status_code not in expected:
            code = response.status_code
            raise GenerationServiceError(
                f"Generation service returned status {code}: "
                f"{response.text[:_ERROR_BODY_PREVIEW_CHARS]}",
                transient=code >= 500 or code == httpx.codes.TOO_MANY_REQUESTS,
                status_code=code,
            )
        return response


def parse_styles_payload(payload: object) -> list[str] | None:
    """Accept ``["a"]``, ``[{"name": "a"}]`` or ``{"styles": ["a"]}``."""

    if isinstance(payload, dict):
        styles = payload.get("styles")
        if not isinstance(styles, list):
            return None
        return [item for item in styles if isinstance(item, str)]
    if not isinstance(payload, list):
        return None
    if all(isinstance(item, str) for item in payload):
        return list(payload)
    if all(isinstance(item, dict) for item in payload):
        return [str(item.get("name") or "") for item in payload]
    return None


def _text_lines(value: object) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value]
    return []


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except json.JSONDecodeError as error:
        raise GenerationServiceError(
            "Failed to decode generation service response.",
            transient=False,
            status_code=response.status_code,
        ) from error
    if not isinstance(payload, dict):
        raise GenerationServiceError(
            "Generation service response is not a JSON object.",
            transient=False,
            status_code=response.status_code,
        )
    return payload
