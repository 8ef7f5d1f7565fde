"""
Schema generation client.

Turns a natural-language request into GraphData using the OpenAI chat API.
In merge mode the current graph is sent along (ids, labels, kinds,
properties and link endpoints only) and the model is asked to return the
full extended schema; in replace mode no context is sent.

Model output is coerced into valid structured data: code fences are
stripped, and if the text still does not parse, the first balanced JSON
object inside it is used.
"""

import json
import logging
from enum import Enum
from typing import Any, Optional, Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from canvas_core.errors import FormatError, ServiceError
from canvas_core.models import GraphData
from canvas_core.store import drop_dangling_links, project_for_context
from canvas_core.validation import IssueSeverity, validate_graph
from canvas_backend.config import DEFAULT_MODEL

logger = logging.getLogger(__name__)


class GenerationMode(str, Enum):
    MERGE = "merge"
    REPLACE = "replace"


SYSTEM_INSTRUCTION = """
You are an expert database architect and graph theory specialist.
Your task is to generate or modify a database schema based on the user's request.
The output must be a strictly valid JSON object representing a graph with 'nodes' and 'links'.

RULES:
1. Return ONLY the raw JSON object, without markdown code blocks.
2. If an existing schema is provided, PRESERVE existing IDs unless instructed to delete them.
3. For a new schema, use descriptive but simple IDs (e.g. 'user', 'order').
4. Connect related nodes with 'links'. Identify foreign keys or logical connections and create links for them.
5. 'source' and 'target' in links must match node 'id's EXACTLY.
6. Use uppercase link labels (e.g. 'AUTHORED', 'CONTAINS', 'BELONGS_TO').

Node structure:
{"id": string, "label": string, "type": "node" | "table" | "document",
 "properties": [{"id": string, "key": string, "value": string, "type": string}]}

Link structure:
{"id": string, "source": string, "target": string, "label": string}
""".strip()


class SchemaGenerationService(Protocol):
    """Anything that can turn a prompt into a graph."""

    async def generate(
        self,
        prompt: str,
        existing: Optional[GraphData],
        mode: GenerationMode,
    ) -> GraphData:
        ...


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` delimiters around a payload."""
    lines = [line for line in text.strip().splitlines() if not line.strip().startswith("```")]
    return "\n".join(lines).strip()


def extract_first_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} block in text, or None.

    Braces inside string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from here; try the next opening brace
        start = text.find("{", start + 1)
    return None


def coerce_json_payload(text: str) -> dict:
    """Parse model output into a dict, tolerating fences and surrounding prose."""
    cleaned = strip_code_fences(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning("Generation response was not valid JSON; looking for an embedded object")
        candidate = extract_first_json_object(cleaned)
        if candidate is None:
            raise FormatError(
                "The AI response was incomplete or invalid JSON. Please try a smaller scope or query."
            )
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise FormatError("The AI response was invalid JSON. Please try again.") from e

    if not isinstance(payload, dict):
        raise FormatError("The AI response was not a JSON object")
    return payload


def graph_from_payload(payload: dict[str, Any]) -> GraphData:
    """
    Validate a generated payload into GraphData.

    `nodes` is required; missing `links` counts as none. Links with unknown
    endpoints are dropped. Duplicate ids are a FormatError.
    """
    if not isinstance(payload.get("nodes"), list):
        raise FormatError("The AI response did not contain a 'nodes' list")
    links = payload.get("links")
    if links is None:
        links = []
    if not isinstance(links, list):
        raise FormatError("The AI response 'links' field is not a list")

    try:
        graph = GraphData.from_json_dict({"nodes": payload["nodes"], "links": links})
    except (ValidationError, TypeError) as e:
        raise FormatError(f"The AI response contained an invalid entity: {e}") from e

    graph = drop_dangling_links(graph)
    errors = [i for i in validate_graph(graph) if i.severity == IssueSeverity.ERROR]
    if errors:
        raise FormatError("; ".join(i.message for i in errors))
    return graph


def build_user_content(prompt: str, existing: Optional[GraphData], mode: GenerationMode) -> str:
    """Compose the user message, with graph context only when merging."""
    content = f"User Request: {prompt}"
    if mode == GenerationMode.MERGE and existing is not None:
        context = json.dumps(project_for_context(existing))
        content += (
            "\n\nCONTEXT: The user wants to EXTEND or MODIFY the following existing schema.\n"
            "- Integrate new nodes/links into this structure.\n"
            "- RETURN THE FULL SCHEMA (Existing + New).\n"
            "- Do not lose existing nodes unless the user request implies deleting them.\n"
            f"\nExisting Schema:\n{context}"
        )
    else:
        content += "\n\nCONTEXT: Create a BRAND NEW schema from scratch. Ignore any previous context."
    content += "\n\nREMINDER: Explicitly define all relationships between nodes in the 'links' array."
    return content


class SchemaGenerator:
    """OpenAI-backed implementation of SchemaGenerationService."""

    def __init__(self, api_key: Optional[str] = None, model: str = DEFAULT_MODEL, client: Optional[AsyncOpenAI] = None):
        self._api_key = api_key
        self._model = model
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise ServiceError("API Key is missing")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def generate(
        self,
        prompt: str,
        existing: Optional[GraphData] = None,
        mode: GenerationMode = GenerationMode.MERGE,
    ) -> GraphData:
        """
        Ask the model for a schema.

        Raises ServiceError for a missing credential, a failed request or an
        empty response, and FormatError when no valid graph can be recovered.
        """
        client = self._get_client()
        mode = GenerationMode(mode)
        logger.info(f"Requesting schema generation ({mode.value}) with model {self._model}")

        try:
            response = await client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_INSTRUCTION},
                    {"role": "user", "content": build_user_content(prompt, existing, mode)},
                ],
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise ServiceError(f"Schema generation request failed: {type(e).__name__}: {e}") from e

        if not response.choices:
            raise ServiceError("No response from AI")
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise ServiceError("No response from AI")

        graph = graph_from_payload(coerce_json_payload(content))
        logger.info(f"Generated schema with {len(graph.nodes)} nodes and {len(graph.links)} links")
        return graph
