from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .errors import ToolHardFailure, ToolSoftFailure
from .schemas import PlanStep, ToolKind

logger = logging.getLogger(__name__)


class ToolInvoker(Protocol):
    """Uniform call contract: return plain text or raise ToolSoftFailure / ToolHardFailure."""

    async def invoke(self, step: PlanStep) -> str: ...


def _lines(title: str, items: Any) -> str:
    if not items:
        return ""
    if isinstance(items, str):
        items = [items]
    rendered = []
    for item in items:
        if isinstance(item, dict):
            rendered.append(" ".join(str(v) for v in item.values() if v not in (None, "")))
        else:
            rendered.append(str(item))
    return f"{title}:\n" + "\n".join(f"- {line}" for line in rendered if line)


def render_code(data: Dict[str, Any], target_language: Optional[str]) -> str:
    # Converted code wins when a target language was asked for, then modified, then original.
    if target_language and data.get("converted_code"):
        return str(data["converted_code"]).strip()
    if data.get("modified_code"):
        return str(data["modified_code"]).strip()
    return str(data.get("original_code") or "").strip()


def render_video(data: Dict[str, Any]) -> str:
    parts = [str(data.get("summary") or "").strip()]
    parts.append(_lines("Key quotes", data.get("quotes")))
    parts.append(_lines("Timestamps", data.get("timestamps")))
    return "\n\n".join(p for p in parts if p)


def render_chart(data: Dict[str, Any], chart_type: Optional[str]) -> str:
    chart = data.get("chart_data")
    if chart in (None, "", {}, []):
        return ""
    body = chart if isinstance(chart, str) else json.dumps(chart, indent=2, ensure_ascii=False)
    return f"Chart type: {chart_type or 'bar'}\n{body}"


class BackendToolClient:
    """HTTP client for the page analysis backend, one method per tool."""

    def __init__(self, base_url: str, timeout: float = 60, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        # Shared pool so concurrent page runs reuse connections.
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    async def invoke(self, step: PlanStep) -> str:
        handlers = {
            ToolKind.SEARCH: self._run_search,
            ToolKind.CODE_ASSISTANT: self._run_code,
            ToolKind.VIDEO_SUMMARIZER: self._run_video,
            ToolKind.CHART_BUILDER: self._run_chart,
            ToolKind.IMPACT_ANALYZER: self._run_impact,
            ToolKind.TEST_SUPPORT: self._run_test_support,
            ToolKind.IMAGE_INSIGHTS: self._run_image_insights,
        }
        handler = handlers.get(step.tool)
        if handler is None:
            raise ToolHardFailure(f"No backend operation for tool '{step.tool.value}'")
        text = (await handler(step)).strip()
        if not text:
            raise ToolSoftFailure(f"{step.tool.heading} returned no content for '{step.resource.page}'")
        return text

    # ---- one operation per tool -------------------------------------------------

    async def search(self, workspace: str, pages: List[str], query: str) -> Dict[str, Any]:
        return await self._post("/search", {"space_key": workspace, "page_titles": pages, "query": query})

    async def code_assistant(
        self, workspace: str, page: str, instruction: str, target_language: Optional[str] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"space_key": workspace, "page_title": page, "instruction": instruction}
        if target_language:
            payload["target_language"] = target_language
        return await self._post("/code-assistant", payload)

    async def video_summarizer(self, workspace: str, page: str) -> Dict[str, Any]:
        return await self._post("/video-summarizer", {"space_key": workspace, "page_title": page})

    async def impact_analyzer(self, workspace: str, old_page: str, new_page: str, question: str) -> Dict[str, Any]:
        return await self._post(
            "/impact-analyzer",
            {"space_key": workspace, "old_page_title": old_page, "new_page_title": new_page, "question": question},
        )

    async def chart_builder(self, workspace: str, page: str, image_url: str, chart_type: str) -> Dict[str, Any]:
        return await self._post(
            "/chart-builder",
            {"space_key": workspace, "page_title": page, "image_url": image_url, "chart_type": chart_type},
        )

    async def test_support(self, workspace: str, page: str, question: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"space_key": workspace, "code_page_title": page}
        if question:
            payload["question"] = question
        return await self._post("/test-support", payload)

    async def image_summary(self, workspace: str, page: str, image_url: str) -> Dict[str, Any]:
        return await self._post("/image-summary", {"space_key": workspace, "page_title": page, "image_url": image_url})

    async def list_images(self, workspace: str, page: str) -> List[str]:
        data = await self._post("/images", {"space_key": workspace, "page_title": page})
        images = data.get("images") or []
        return [str(url) for url in images if url]

    # ---- step adapters ------------------------------------------------------------

    async def _run_search(self, step: PlanStep) -> str:
        data = await self.search(step.resource.workspace, [step.resource.page], step.instruction)
        return str(data.get("response") or "")

    async def _run_code(self, step: PlanStep) -> str:
        data = await self.code_assistant(
            step.resource.workspace, step.resource.page, step.instruction, step.target_language
        )
        return render_code(data, step.target_language)

    async def _run_video(self, step: PlanStep) -> str:
        data = await self.video_summarizer(step.resource.workspace, step.resource.page)
        return render_video(data)

    async def _run_impact(self, step: PlanStep) -> str:
        if step.related_resource is None:
            raise ToolHardFailure("Impact analysis needs two pages")
        data = await self.impact_analyzer(
            step.resource.workspace, step.resource.page, step.related_resource.page, step.instruction
        )
        return str(data.get("impact_analysis") or "")

    async def _run_chart(self, step: PlanStep) -> str:
        images = await self._require_images(step)
        data = await self.chart_builder(
            step.resource.workspace, step.resource.page, images[0], step.chart_type or "bar"
        )
        return render_chart(data, step.chart_type)

    async def _run_test_support(self, step: PlanStep) -> str:
        data = await self.test_support(step.resource.workspace, step.resource.page, step.instruction)
        return str(data.get("test_strategy") or "")

    async def _run_image_insights(self, step: PlanStep) -> str:
        images = await self._require_images(step)
        summaries = []
        for url in images:
            data = await self.image_summary(step.resource.workspace, step.resource.page, url)
            summary = str(data.get("summary") or "").strip()
            if summary:
                summaries.append(f"Image: {url}\n{summary}" if len(images) > 1 else summary)
        return "\n\n".join(summaries)

    async def _require_images(self, step: PlanStep) -> List[str]:
        images = await self.list_images(step.resource.workspace, step.resource.page)
        if not images:
            raise ToolSoftFailure(f"No images found on '{step.resource.page}'")
        return images

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST helper that maps transport and status errors onto soft/hard tool failures."""
        try:
            resp = await self.client.post(f"{self.base_url}{path}", json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            if e.response.status_code == 404:
                raise ToolSoftFailure(f"Nothing applicable: {detail}") from e
            raise ToolHardFailure(f"{path} failed with HTTP {e.response.status_code}: {detail}") from e
        except httpx.TimeoutException as e:
            raise ToolHardFailure(f"{path} timed out") from e
        except httpx.RequestError as e:
            raise ToolHardFailure(f"{path} request failed: {e}") from e
        try:
            data = resp.json()
        except ValueError as e:
            raise ToolHardFailure(f"{path} returned a malformed response") from e
        if not isinstance(data, dict):
            raise ToolHardFailure(f"{path} returned a malformed response")
        return data

    async def close(self) -> None:
        # Safe to call multiple times
        if not self.client.is_closed:
            await self.client.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return json.dumps(body)
