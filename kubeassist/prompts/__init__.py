"""Prompt texts sent to the agent: the base system message and chat prompts."""

from kubeassist.prompts.loader import Loader

GLOBAL_SCOPE = "_global_"
CLUSTER_SCOPED = "(cluster-scoped)"

_loader = Loader()


def system_message() -> str:
    """Base system message every session starts from."""
    return _loader.load("system")


def diagnose_prompt(kind: str, name: str, namespace: str) -> str:
    """Prompt asking the agent to diagnose one resource."""
    return _loader.load("diagnose").format(kind=kind, name=name, namespace=namespace)


def explain_prompt(kind: str, name: str, namespace: str) -> str:
    """Prompt asking the agent to explain one resource."""
    return _loader.load("explain").format(kind=kind, name=name, namespace=namespace)


def contextual_prompt(text: str, kind: str = "", name: str = "", namespace: str = "") -> str:
    """Wrap a question so the agent focuses on one resource.

    Without a resource (kind and name) the question is returned unchanged.
    """
    if not kind or not name:
        return text
    return _loader.load("resource_context").format(
        kind=kind,
        name=name,
        namespace=namespace or CLUSTER_SCOPED,
        question=text,
    )


def chat_scope(kind: str = "", name: str = "", namespace: str = "") -> str:
    """History key of a chat: kind/namespace/name, or the global scope."""
    if not kind or not name:
        return GLOBAL_SCOPE
    if namespace:
        return f"{kind}/{namespace}/{name}"
    return f"{kind}/{name}"


__all__ = [
    "GLOBAL_SCOPE",
    "Loader",
    "chat_scope",
    "contextual_prompt",
    "diagnose_prompt",
    "explain_prompt",
    "system_message",
]
