"""Translation between kubeassist types and the Copilot SDK dialect."""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from copilot import CopilotClient, Tool

from kubeassist.config import ProviderConfig
from kubeassist.errors import ToolError
from kubeassist.tools import ToolSpec, format_result

logger = structlog.get_logger(__name__)

# Long-lived sessions compact context in the background at 80% usage and
# block for compaction at 95%.
BACKGROUND_COMPACTION_THRESHOLD = 0.80
BUFFER_EXHAUSTION_THRESHOLD = 0.95


@dataclass(frozen=True)
class ModelInfo:
    """A model available to the current account."""

    id: str
    name: str


@dataclass(frozen=True)
class SessionConfiguration:
    """Snapshot of everything a new session is created with.

    Built fresh for every session so that a live session always matches the
    configuration that existed when it was created.
    """

    model: str
    streaming: bool
    reasoning_effort: str
    skill: str
    system_message: str
    tools: Tuple[ToolSpec, ...]
    provider: Optional[Dict[str, Any]] = None

    def to_sdk(self) -> Dict[str, Any]:
        return session_options(self)


def provider_options(provider: Optional[ProviderConfig]) -> Optional[Dict[str, Any]]:
    """BYOK provider block, or None when no endpoint is configured."""
    if provider is None or not provider.base_url:
        return None

    options: Dict[str, Any] = {
        "type": provider.type,
        "base_url": provider.base_url,
    }
    api_key = provider.resolve_api_key()
    if api_key:
        options["api_key"] = api_key
    bearer_token = provider.resolve_bearer_token()
    if bearer_token:
        options["bearer_token"] = bearer_token
    if provider.wire_api:
        options["wire_api"] = provider.wire_api
    if provider.azure is not None and provider.azure.api_version:
        options["azure"] = {"api_version": provider.azure.api_version}
    return options


def _arguments(invocation: Any) -> Dict[str, Any]:
    if isinstance(invocation, dict):
        arguments = invocation.get("arguments")
    else:
        arguments = getattr(invocation, "arguments", None)
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as e:
            raise ToolError(f"arguments are not valid JSON: {e}") from e
    return arguments or {}


def to_sdk_tool(spec: ToolSpec) -> Tool:
    """Wrap a ToolSpec as an SDK tool.

    The handler runs in a worker thread since cluster reads block. Failures
    are returned to the agent as failed tool results so it can decide to
    retry or report them.
    """

    async def handler(invocation: Any) -> Dict[str, Any]:
        try:
            arguments = _arguments(invocation)
            result = await asyncio.to_thread(spec.invoke, arguments)
        except ToolError as e:
            logger.warning("tool_failed", tool=spec.name, error=str(e))
            return {
                "textResultForLlm": f"Error: {e}",
                "resultType": "failure",
                "error": str(e),
            }
        except Exception as e:
            logger.error("tool_crashed", tool=spec.name, error=str(e), exc_info=True)
            return {
                "textResultForLlm": f"Error: {spec.name} failed unexpectedly: {e}",
                "resultType": "failure",
                "error": str(e),
            }
        return {
            "textResultForLlm": format_result(result),
            "resultType": "success",
        }

    return Tool(
        name=spec.name,
        description=spec.description,
        parameters=spec.parameters_schema(),
        handler=handler,
    )


def _approve_all(request: Any, invocation: Any = None) -> Dict[str, Any]:
    # Every exposed tool is read-only.
    return {"kind": "approved"}


def _hook_value(data: Any, key: str) -> Any:
    if isinstance(data, dict):
        return data.get(key)
    return getattr(data, key, None)


def _on_pre_tool_use(hook_input: Any, invocation: Any = None) -> Dict[str, Any]:
    logger.debug("tool_invoked", tool=_hook_value(hook_input, "toolName"))
    return {
        "permissionDecision": "allow",
        "modifiedArgs": _hook_value(hook_input, "toolArgs"),
    }


def _on_post_tool_use(hook_input: Any, invocation: Any = None) -> Dict[str, Any]:
    logger.debug("tool_completed", tool=_hook_value(hook_input, "toolName"))
    return {}


def _on_error_occurred(hook_input: Any, invocation: Any = None) -> Dict[str, Any]:
    logger.error(
        "session_error",
        context=_hook_value(hook_input, "errorContext"),
        error=_hook_value(hook_input, "error"),
    )
    return {"errorHandling": "retry"}


def session_options(config: SessionConfiguration) -> Dict[str, Any]:
    """Build the create_session payload for a SessionConfiguration."""
    options: Dict[str, Any] = {
        "model": config.model,
        "streaming": config.streaming,
        "tools": [to_sdk_tool(spec) for spec in config.tools],
        "on_permission_request": _approve_all,
        "system_message": {"content": config.system_message},
        "infinite_sessions": {
            "enabled": True,
            "background_compaction_threshold": BACKGROUND_COMPACTION_THRESHOLD,
            "buffer_exhaustion_threshold": BUFFER_EXHAUSTION_THRESHOLD,
        },
        "hooks": {
            "on_pre_tool_use": _on_pre_tool_use,
            "on_post_tool_use": _on_post_tool_use,
            "on_error_occurred": _on_error_occurred,
        },
    }
    if config.reasoning_effort:
        options["reasoning_effort"] = config.reasoning_effort
    if config.provider is not None:
        options["provider"] = dict(config.provider)
    return options


def default_client_factory(options: Dict[str, Any]) -> CopilotClient:
    """Create an SDK client for the given client options."""
    return CopilotClient(options)


def to_model_info(models: Sequence[Any]) -> List[ModelInfo]:
    """Normalize the runtime's model listing."""
    result = []
    for model in models:
        model_id = _hook_value(model, "id") or ""
        name = _hook_value(model, "name") or model_id
        result.append(ModelInfo(id=str(model_id), name=str(name)))
    return result
