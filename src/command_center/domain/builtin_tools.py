"""Built-in Tools - The Core Catalog Every Engine Starts With.

Grouped by owning service:

    CoreApplication   navigateTo, runFeatureWithInput (UI actions: raw result
                      goes straight back to the caller)
    AiCore            setAiModel, listTools
    GuardrailService  toggleGuardrailPolicy
    SystemHealth      getSystemStatus
    Utilities         getTime, calculator
    Knowledge         searchKnowledgeBase, webSearch (Tavily, only when an
                      API key is configured)

Handlers close over the registries they act on, so one catalog belongs to
one set of registries. Handlers raise on failure; the Orchestrator turns
that into a recorded tool failure.
"""

from __future__ import annotations

import ast
import math
import operator
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field

from .guardrails import GuardrailPipeline
from .knowledge import FeatureTaxonomy, KnowledgeRetriever
from .model_catalog import ModelRegistry
from .tools import UI_ACTION_TAG, FunctionHandler, Tool, ToolRegistry, function_tool

# ---------------------------------------------------------------------------
# Argument models (camelCase on the wire, snake_case in handlers)
# ---------------------------------------------------------------------------


class NavigateArgs(BaseModel):
    feature_id: str = Field(alias="featureId", description="The ID of the feature to navigate to.")

    model_config = ConfigDict(extra="forbid")


class RunFeatureArgs(BaseModel):
    feature_id: str = Field(alias="featureId", description="The ID of the feature to run.")
    props: dict[str, Any] = Field(
        default_factory=dict,
        description="Initial properties for the feature, based on its expected inputs.",
    )

    model_config = ConfigDict(extra="forbid")


class SetModelArgs(BaseModel):
    model_id: str = Field(alias="modelId", description="The ID or alias of the AI model to activate.")

    model_config = ConfigDict(extra="forbid", protected_namespaces=())


class TogglePolicyArgs(BaseModel):
    policy_name: str = Field(alias="policyName", description="The name of the guardrail policy to toggle.")
    enabled: bool = Field(description="True to enable, false to disable.")

    model_config = ConfigDict(extra="forbid")


class ListToolsArgs(BaseModel):
    tag: str | None = Field(default=None, description="Only list tools carrying this tag.")

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

_OPERATORS: dict[type, Callable[..., Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Pow: operator.pow,
    ast.Mod: operator.mod,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_SAFE_NAMES: dict[str, Any] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "sqrt": math.sqrt,
    "factorial": math.factorial,
    "log": math.log,
    "log10": math.log10,
    "exp": math.exp,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "pi": math.pi,
    "e": math.e,
}

MAX_EXPONENT = 1000


def evaluate_expression(expression: str) -> int | float:
    """Evaluate an arithmetic expression without ``eval()``.

    The expression is parsed to an AST and only whitelisted nodes, operators
    and names are evaluated; anything else raises ValueError.

    Example:
        >>> evaluate_expression("2 + 2")
        4
        >>> evaluate_expression("sqrt(16) * pi")
        12.566370614359172
    """

    def eval_node(node: ast.expr) -> Any:
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        if isinstance(node, ast.BinOp) and type(node.op) in _OPERATORS:
            left, right = eval_node(node.left), eval_node(node.right)
            if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
                raise ValueError(f"Exponent {right} is too large")
            return _OPERATORS[type(node.op)](left, right)
        if isinstance(node, ast.UnaryOp) and type(node.op) in _OPERATORS:
            return _OPERATORS[type(node.op)](eval_node(node.operand))
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or not callable(_SAFE_NAMES.get(node.func.id)):
                raise ValueError("Only whitelisted named functions are allowed")
            if node.keywords:
                raise ValueError("Keyword arguments are not allowed")
            return _SAFE_NAMES[node.func.id](*(eval_node(arg) for arg in node.args))
        if isinstance(node, ast.Name):
            if node.id in _SAFE_NAMES and not callable(_SAFE_NAMES[node.id]):
                return _SAFE_NAMES[node.id]
            raise ValueError(f"Name '{node.id}' is not allowed")
        raise ValueError(f"Unsupported expression element: {type(node).__name__}")

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"Invalid expression: {exc.msg}") from exc
    return eval_node(tree.body)


async def calculator(expression: str) -> str:
    """Evaluate a math expression (e.g. "5 * 8", "factorial(6)", "sin(pi/2)") and return the result."""
    return str(evaluate_expression(expression))


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


def make_get_time(clock: Callable[[], datetime] | None = None) -> Callable[..., Any]:
    """Build the getTime handler. ``clock`` returns an aware UTC datetime."""
    now = clock or (lambda: datetime.now(UTC))

    async def get_time(timezone: str = "UTC") -> str:
        """Returns the current time (HH:MM, 24h) in the given IANA timezone."""
        try:
            zone = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{timezone}'") from exc
        return now().astimezone(zone).strftime("%H:%M")

    return get_time


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------


def make_web_search(api_key: str) -> Callable[..., Any]:
    async def web_search(query: str) -> str:
        """Search the web for current information (news, recent facts, anything past the model's training data)."""
        from tavily import AsyncTavilyClient

        client = AsyncTavilyClient(api_key=api_key)
        response = await client.search(
            query=query,
            max_results=5,
            search_depth="basic",
            include_answer=True,
            include_raw_content=False,
        )

        if not response or "results" not in response:
            return f"No web results found for query: '{query}'"

        parts = []
        if response.get("answer"):
            parts.append(f"Summary: {response['answer']}\n")
        parts.append("Sources:")
        for i, result in enumerate(response["results"][:5], 1):
            title = result.get("title", "Untitled")
            url = result.get("url", "")
            snippet = result.get("content", "")[:200]
            parts.append(f"{i}. {title}\n   {snippet}...\n   {url}\n")
        return "\n".join(parts)

    return web_search


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def build_builtin_tools(
    *,
    models: ModelRegistry,
    tools: ToolRegistry,
    guardrails: GuardrailPipeline,
    taxonomy: FeatureTaxonomy,
    retriever: KnowledgeRetriever | None = None,
    tavily_api_key: str | None = None,
    clock: Callable[[], datetime] | None = None,
    status_extras: Callable[[], dict[str, Any]] | None = None,
) -> list[Tool]:
    """Build the built-in tool catalog bound to the given registries.

    Args:
        models: Registry switched by setAiModel and reported by getSystemStatus
        tools: Registry listed by listTools (normally the one these get registered in)
        guardrails: Pipeline toggled by toggleGuardrailPolicy
        taxonomy: Features navigateTo/runFeatureWithInput may target
        retriever: Backs searchKnowledgeBase; omitted when None
        tavily_api_key: Enables webSearch
        clock: Time source for getTime
        status_extras: Extra fields merged into getSystemStatus output
    """

    def require_feature(feature_id: str) -> str:
        feature = taxonomy.get(feature_id)
        if feature is None:
            raise ValueError(f"Unknown feature '{feature_id}'")
        return feature.name

    async def navigate_to(feature_id: str) -> dict[str, Any]:
        name = require_feature(feature_id)
        return {"success": True, "action": "navigate", "featureId": feature_id, "message": f"Navigated to {name}"}

    async def run_feature_with_input(feature_id: str, props: dict[str, Any]) -> dict[str, Any]:
        name = require_feature(feature_id)
        return {
            "success": True,
            "action": "run_feature",
            "featureId": feature_id,
            "props": props,
            "message": f"Running feature {name} with provided input.",
        }

    async def set_ai_model(model_id: str) -> dict[str, Any]:
        if not models.set_active(model_id):
            raise ValueError(f"Failed to set AI model to '{model_id}'")
        return {"success": True, "message": f"AI model set to {models.get_active().name}."}

    async def toggle_guardrail_policy(policy_name: str, enabled: bool) -> dict[str, Any]:
        if not guardrails.set_policy(policy_name, enabled):
            raise ValueError(f"Unknown guardrail policy '{policy_name}'")
        state = "enabled" if enabled else "disabled"
        return {"success": True, "message": f"Guardrail policy '{policy_name}' set to {state}."}

    async def get_system_status() -> dict[str, Any]:
        active = models.get_active()
        status: dict[str, Any] = {
            "currentAiModel": active.name,
            "currentAiModelId": active.id,
            "registeredModels": len(models),
            "guardrailPolicies": guardrails.policy_states(),
            "activeTools": len(tools),
        }
        if status_extras is not None:
            status.update(status_extras())
        return {"success": True, "status": status}

    async def list_tools(tag: str | None = None) -> list[dict[str, Any]]:
        selected = tools.list_by_tag(tag) if tag else tools.list_tools()
        return [
            {"name": t.name, "description": t.description, "service": t.service, "tags": sorted(t.tags)}
            for t in selected
        ]

    catalog = [
        Tool(
            name="navigateTo",
            description="Navigates to a specific feature page within the application.",
            args_model=NavigateArgs,
            handler=FunctionHandler(navigate_to),
            tags=frozenset({"system", "navigation", UI_ACTION_TAG}),
            service="CoreApplication",
        ),
        Tool(
            name="runFeatureWithInput",
            description="Navigates to a feature and passes initial data to it, streamlining workflows.",
            args_model=RunFeatureArgs,
            handler=FunctionHandler(run_feature_with_input),
            tags=frozenset({"system", "workflow", "automation", UI_ACTION_TAG}),
            service="CoreApplication",
        ),
        Tool(
            name="setAiModel",
            description="Sets the active AI model for subsequent interactions.",
            args_model=SetModelArgs,
            handler=FunctionHandler(set_ai_model),
            tags=frozenset({"system", "configuration", "ai_settings"}),
            service="AiCore",
        ),
        Tool(
            name="toggleGuardrailPolicy",
            description="Enables or disables a specific AI safety guardrail policy.",
            args_model=TogglePolicyArgs,
            handler=FunctionHandler(toggle_guardrail_policy),
            tags=frozenset({"system", "security", "ai_safety"}),
            service="GuardrailService",
        ),
        function_tool(
            get_system_status,
            name="getSystemStatus",
            description="Retrieves the current operational status of core AI components.",
            tags={"system", "monitoring", "diagnostics"},
            service="SystemHealth",
        ),
        Tool(
            name="listTools",
            description="Lists the tools currently available, optionally filtered by tag.",
            args_model=ListToolsArgs,
            handler=FunctionHandler(list_tools),
            tags=frozenset({"system", "introspection"}),
            service="AiCore",
        ),
        function_tool(make_get_time(clock), name="getTime", tags={"utility", "time"}, service="Utilities"),
        function_tool(calculator, name="calculator", tags={"utility", "math"}, service="Utilities"),
    ]

    if retriever is not None:

        async def search_knowledge_base(query: str) -> str:
            """Searches the internal knowledge base for documents relevant to the query."""
            found = await retriever.query(query)
            return found or f"No relevant knowledge found for '{query}'."

        catalog.append(
            function_tool(
                search_knowledge_base,
                name="searchKnowledgeBase",
                tags={"knowledge", "search"},
                service="Knowledge",
            )
        )

    if tavily_api_key:
        catalog.append(
            function_tool(
                make_web_search(tavily_api_key),
                name="webSearch",
                tags={"knowledge", "search", "web"},
                service="Knowledge",
            )
        )

    return catalog


def register_builtin_tools(registry: ToolRegistry, catalog: list[Tool]) -> int:
    """Register ``catalog`` into ``registry``. Returns how many were accepted."""
    return sum(1 for tool in catalog if registry.register(tool))


__all__ = [
    "build_builtin_tools",
    "calculator",
    "evaluate_expression",
    "make_get_time",
    "make_web_search",
    "register_builtin_tools",
]
