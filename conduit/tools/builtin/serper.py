"""
Serper API tools: ``web_search`` and ``scrape_url``.

Both share one small ``SerperClient`` that posts JSON with the
``X-API-KEY`` header and maps HTTP failures to readable errors.  The
registry turns those errors into ``"Error: ..."`` tool results.
"""

from __future__ import annotations

import logging

import httpx

from conduit.tools.base import Tool, ToolContext

logger = logging.getLogger(__name__)

SEARCH_URL = "https://google.serper.dev/search"
SCRAPE_URL = "https://scrape.serper.dev"


class SerperError(RuntimeError):
    pass


class SerperClient:
    """
    Parameters
    ----------
    api_key:
        Serper API key.  Tools fail with a clear message when it is empty.
    api_key_env:
        Name of the variable the key was read from, used in error text.
    transport:
        Optional ``httpx`` transport, used by tests to mock the API.
    """

    def __init__(
        self,
        api_key: str = "",
        api_key_env: str = "SERPER_API_KEY",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._transport = transport

    async def post(self, url: str, payload: dict, timeout: float, label: str) -> dict:
        if not self._api_key:
            raise SerperError(
                f"Serper API key not configured. Set {self._api_key_env}."
            )
        headers = {"X-API-KEY": self._api_key, "Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                resp = await client.post(url, json=payload, headers=headers)
            except httpx.TimeoutException as e:
                raise SerperError(f"{label} request timed out") from e
            except httpx.HTTPError as e:
                raise SerperError(f"{label} request failed: {e}") from e

        if resp.status_code == 401:
            raise SerperError(f"Invalid Serper API key for {label.lower()}")
        if resp.status_code == 429:
            raise SerperError(f"{label} rate limit exceeded. Please try again later.")
        if resp.status_code >= 400:
            raise SerperError(f"{label} API error: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise SerperError(f"{label} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise SerperError(f"{label} returned an unexpected payload")
        return data


class WebSearchTool(Tool):
    """Google search through Serper."""

    def __init__(self, client: SerperClient) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return "web_search"

    @property
    def description(self) -> str:
        return "Search the web for current information"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The search query",
                },
                "num_results": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 20,
                    "default": 10,
                    "description": "Number of results to return (1-20)",
                },
            },
            "required": ["query"],
        }

    def format_call_preview(self, params: dict) -> str | None:
        return f"Searching: {params.get('query', '')}"

    async def execute(self, params: dict, context: ToolContext) -> str:
        data = await self._client.post(
            SEARCH_URL,
            {"q": params["query"], "num": params.get("num_results", 10)},
            timeout=10.0,
            label="Search",
        )
        return format_search_results(data)


def format_search_results(data: dict) -> str:
    lines: list[str] = []

    answer = data.get("answerBox")
    if answer:
        lines.append(f"**Answer:** {answer.get('answer', '')}")
        lines.append(f"**Source:** {answer.get('title', '')} - {answer.get('link', '')}")
        lines.append("")

    graph = data.get("knowledgeGraph")
    if graph:
        lines.append(f"**{graph.get('title', '')}**")
        lines.append(graph.get("description", ""))
        lines.append("")

    organic = data.get("organic") or []
    if organic:
        lines.append("**Search Results:**")
        for i, result in enumerate(organic, start=1):
            lines.append(f"{i}. **{result.get('title', '')}**")
            lines.append(f"   {result.get('snippet', '')}")
            lines.append(f"   Link: {result.get('link', '')}")
            lines.append("")

    return "\n".join(lines).strip() or "No search results found."


class ScrapeUrlTool(Tool):
    """Fetch a web page's content through Serper's scrape endpoint."""

    def __init__(self, client: SerperClient) -> None:
        self._client = client

    @property
    def name(self) -> str:
        return "scrape_url"

    @property
    def description(self) -> str:
        return (
            "Scrape and extract content from a web page URL. Returns the page "
            "title and its content as markdown or plain text."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "minLength": 1,
                    "description": "The URL to scrape",
                },
                "include_markdown": {
                    "type": "boolean",
                    "default": True,
                    "description": "Return the content formatted as markdown",
                },
            },
            "required": ["url"],
        }

    def format_call_preview(self, params: dict) -> str | None:
        return f"Scraping: {params.get('url', '')}"

    async def execute(self, params: dict, context: ToolContext) -> str:
        include_markdown = params.get("include_markdown", True)
        data = await self._client.post(
            SCRAPE_URL,
            {"url": params["url"], "includeMarkdown": include_markdown},
            timeout=30.0,
            label="Scraping",
        )
        if data.get("error"):
            raise SerperError(f"Scraping failed: {data['error']}")

        out = f"**URL:** {data.get('url', params['url'])}\n"
        if data.get("title"):
            out += f"**Title:** {data['title']}\n\n"
        if include_markdown and data.get("markdown"):
            out += f"**Content:**\n{data['markdown']}"
        elif data.get("text"):
            out += f"**Content:**\n{data['text']}"
        else:
            out += "**Content:** No content could be extracted from this URL."
        return out
