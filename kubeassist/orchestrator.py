"""
AI session orchestration.

AIOrchestrator owns the agent runtime client and at most one live session.
It tracks the active model and skill, recreates the session lazily whenever
either changes, and relays one prompt turn at a time to a Listener.

State is guarded by a single lock that is only held for in-memory snapshot
and install steps, never across a call into the runtime. Every session
invalidation bumps a generation counter, so a session created from a stale
snapshot is discarded instead of installed.
"""

import asyncio
import threading
from typing import Any, Callable, List, Optional, Sequence

import structlog

from kubeassist.config import Config
from kubeassist.copilot_adapter import (
    ModelInfo,
    SessionConfiguration,
    default_client_factory,
    provider_options,
    to_model_info,
)
from kubeassist.errors import (
    AIDisabledError,
    AIError,
    AINotReadyError,
    SendError,
    SessionCreationError,
)
from kubeassist.events import EventRelay, Listener, StreamEvent, sdk_event_type
from kubeassist.prompts import system_message
from kubeassist.runtime import resolve_cli_path
from kubeassist.skills import SkillRegistry, new_skill_registry
from kubeassist.tools import ToolSpec

logger = structlog.get_logger(__name__)

DEFAULT_TURN_TIMEOUT = 300.0

# Attempts at installing a session while the configuration keeps changing.
_SESSION_ATTEMPTS = 3


class AIOrchestrator:
    """Coordinates the agent runtime for the terminal application."""

    def __init__(
        self,
        config: Config,
        client_factory: Optional[Callable[[dict], Any]] = None,
        skills: Optional[SkillRegistry] = None,
        runtime_resolver: Callable[[], Optional[str]] = resolve_cli_path,
        turn_timeout: float = DEFAULT_TURN_TIMEOUT,
        relay_size: int = 256,
    ):
        """Initialize the orchestrator. Nothing is started until init().

        Args:
            config: Loaded configuration; read once, never mutated
            client_factory: Builds the runtime client from client options
            skills: Skill catalog (built-ins plus configured directory by default)
            runtime_resolver: Returns the CLI path, or None for the SDK default
            turn_timeout: Overall deadline of one send() in seconds
            relay_size: Capacity of the live event queue of a turn
        """
        self.config = config
        self.turn_timeout = turn_timeout
        self.relay_size = relay_size
        self._client_factory = client_factory or default_client_factory
        self._skills = skills if skills is not None else new_skill_registry(config.ai_skills_directory)
        self._runtime_resolver = runtime_resolver

        self._lock = threading.RLock()
        self._init_lock = asyncio.Lock()

        self._initialized = False
        self._client: Any = None
        self._session: Any = None
        self._generation = 0
        self._all_tools: List[ToolSpec] = []
        self._tools: List[ToolSpec] = []
        self._model = config.ai_model
        self._skill = config.ai_active_skill

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def is_enabled(self) -> bool:
        return self.config.is_ai_enabled()

    def is_initialized(self) -> bool:
        with self._lock:
            return self._initialized

    async def init(self) -> None:
        """Start the runtime client.

        Idempotent, and a no-op when AI is disabled. Concurrent callers share
        a single start attempt. On failure the orchestrator stays
        uninitialized so a later call can retry.

        Raises:
            AINotReadyError: If the client cannot be started
        """
        if not self.is_enabled():
            logger.info("AI features disabled, skipping init")
            return

        async with self._init_lock:
            if self.is_initialized():
                return

            logger.info("Initializing AI/Copilot integration")
            options: dict = {"log_level": "error"}

            cli_path = await asyncio.to_thread(self._runtime_resolver)
            if cli_path:
                options["cli_path"] = cli_path

            token = self.config.resolve_github_token()
            if token:
                options["github_token"] = token
            else:
                options["use_logged_in_user"] = True

            try:
                client = self._client_factory(options)
                await client.start()
            except Exception as e:
                logger.error("Copilot client failed to start", error=str(e))
                raise AINotReadyError(f"copilot init failed: {e}") from e

            with self._lock:
                self._client = client
                self._initialized = True

            logger.info("AI/Copilot integration ready", model=self.active_model(), cli_path=cli_path)

    async def stop(self) -> None:
        """Destroy the session and stop the client. Safe to call repeatedly."""
        with self._lock:
            session, client = self._session, self._client
            self._session = None
            self._client = None
            self._initialized = False
            self._generation += 1

        await self._destroy_session(session)
        if client is not None:
            try:
                await client.stop()
            except Exception as e:
                logger.warning("Copilot client stop failed", error=str(e))
            logger.info("AI/Copilot integration stopped")

    # ------------------------------------------------------------------
    # Tools, skills and model
    # ------------------------------------------------------------------

    def set_tools(self, all_tools: Sequence[ToolSpec]) -> None:
        """Install the full tool set; the active set follows the current skill.

        Takes effect for the next session created.
        """
        with self._lock:
            self._all_tools = list(all_tools)
            self._tools = self._skills.filter_tools(self._skill, self._all_tools)

    def tools(self) -> List[ToolSpec]:
        with self._lock:
            return list(self._tools)

    def all_tools(self) -> List[ToolSpec]:
        with self._lock:
            return list(self._all_tools)

    def skills(self) -> SkillRegistry:
        return self._skills

    def active_skill(self) -> str:
        with self._lock:
            return self._skill

    def active_model(self) -> str:
        with self._lock:
            return self._model

    async def set_skill(self, name: str) -> None:
        """Switch skill. "" restores the full tool set; unknown names keep it.

        A live session is destroyed so the next prompt sees the new tools.
        """
        name = (name or "").strip()
        with self._lock:
            self._skill = name
            self._tools = self._skills.filter_tools(name, self._all_tools)
            session = self._invalidate_locked()
            tool_count = len(self._tools)

        if name and name not in self._skills:
            logger.warning("Unknown skill, keeping all tools", skill=name)
        logger.info("Skill switched", skill=name or "(none)", tools=tool_count)
        await self._destroy_session(session)

    async def set_model(self, name: str) -> None:
        """Switch model; a live session is destroyed and recreated on demand."""
        with self._lock:
            self._model = name
            session = self._invalidate_locked()

        logger.info("Model switched", model=name)
        await self._destroy_session(session)

    async def list_models(self) -> List[ModelInfo]:
        """Models available to the current account.

        Raises:
            AINotReadyError: If the client is not (and cannot be) initialized
            AIError: If the runtime fails to list models
        """
        if not self.is_initialized():
            await self.init()
        with self._lock:
            client = self._client
        if client is None:
            raise AINotReadyError("AI client not initialized")

        try:
            models = await client.list_models()
        except Exception as e:
            raise AIError(f"failed to list models: {e}") from e
        return to_model_info(models or [])

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def build_session_config(self) -> SessionConfiguration:
        """Snapshot the current state into a session configuration."""
        with self._lock:
            skill_name = self._skill
            model = self._model
            tools = tuple(self._tools)

        skill = self._skills.get(skill_name) if skill_name else None
        reasoning_effort = self.config.ai_reasoning_effort
        if not reasoning_effort and skill is not None:
            reasoning_effort = skill.reasoning_effort

        message = system_message()
        suffix = self._skills.system_message_suffix(skill_name)
        if suffix:
            message = f"{message}\n\n{suffix}"

        return SessionConfiguration(
            model=model,
            streaming=self.config.ai_streaming,
            reasoning_effort=reasoning_effort,
            skill=skill_name,
            system_message=message,
            tools=tools,
            provider=provider_options(self.config.ai_provider),
        )

    async def ensure_session(self) -> Any:
        """Return the live session, creating one if needed.

        Raises:
            AINotReadyError: If the client is not initialized
            SessionCreationError: If the runtime fails to create a session
        """
        for _ in range(_SESSION_ATTEMPTS):
            with self._lock:
                if self._session is not None:
                    return self._session
                if not self._initialized or self._client is None:
                    raise AINotReadyError("AI client not initialized")
                client = self._client
                generation = self._generation

            session_config = self.build_session_config()
            try:
                session = await client.create_session(session_config.to_sdk())
            except Exception as e:
                logger.error("Session creation failed", model=session_config.model, error=str(e))
                raise SessionCreationError(f"failed to create AI session: {e}") from e

            with self._lock:
                if self._generation == generation and self._session is None:
                    self._session = session
                    logger.info(
                        "AI session created",
                        model=session_config.model,
                        skill=session_config.skill or "(none)",
                        tools=len(session_config.tools),
                        byok=self.config.has_byok_provider(),
                    )
                    return session

            # Configuration changed or another caller won the race.
            logger.debug("Discarding session created from a stale configuration")
            await self._destroy_session(session)

        raise SessionCreationError("configuration kept changing while creating the AI session")

    async def reset_session(self) -> None:
        """Drop the live session; the next prompt starts a fresh conversation."""
        with self._lock:
            session = self._invalidate_locked()
        await self._destroy_session(session)

    def _invalidate_locked(self) -> Any:
        session = self._session
        self._session = None
        self._generation += 1
        return session

    async def _destroy_session(self, session: Any) -> None:
        if session is None:
            return
        try:
            await session.destroy()
        except Exception as e:
            logger.warning("Session destroy failed", error=str(e))

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def send(self, prompt: str, listener: Listener) -> str:
        """Run one prompt turn and return the final text.

        The listener gets response_start, then live events in emission order,
        then exactly one of response_complete or response_failed.

        Raises:
            AIDisabledError: If AI is disabled (no listener calls)
            AINotReadyError: If the client cannot be initialized
            SessionCreationError: If no session can be created
            SendError: If the turn fails or exceeds the turn timeout
        """
        if not self.is_enabled():
            raise AIDisabledError("AI features are disabled. Enable in config: ai_enabled=true")

        if not self.is_initialized():
            await self.init()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.turn_timeout

        try:
            session = await asyncio.wait_for(self.ensure_session(), timeout=self.turn_timeout)
        except asyncio.TimeoutError as e:
            raise SessionCreationError(
                f"timed out creating AI session after {self.turn_timeout}s"
            ) from e

        listener.response_start()
        relay = EventRelay(listener, maxsize=self.relay_size).start()

        def on_event(event: Any) -> None:
            event_type = sdk_event_type(event)
            if event_type == "session.error":
                message = getattr(getattr(event, "data", None), "message", None)
                logger.error("Session error event", error=message)
                return
            stream_event = StreamEvent.from_sdk(event)
            if stream_event is not None:
                relay.push(stream_event)

        unsubscribe = session.on(on_event)
        error: Optional[SendError] = None
        cause: Optional[BaseException] = None
        response = None
        try:
            remaining = max(deadline - loop.time(), 0.0)
            response = await asyncio.wait_for(
                session.send_and_wait({"prompt": prompt}, timeout=remaining),
                timeout=remaining,
            )
        except asyncio.TimeoutError as e:
            error, cause = SendError(f"AI request timed out after {self.turn_timeout}s"), e
        except Exception as e:
            error, cause = SendError(f"AI request failed: {e}"), e
        finally:
            try:
                unsubscribe()
            except Exception as e:
                logger.warning("Unsubscribe failed", error=str(e))
            await relay.close()

        if relay.dropped:
            logger.debug("Live events dropped during turn", dropped=relay.dropped)

        if error is not None:
            logger.error("AI turn failed", error=str(error))
            listener.response_failed(error)
            raise error from cause

        text = ""
        data = getattr(response, "data", None)
        if data is not None:
            text = getattr(data, "content", None) or ""
        listener.response_complete(text)
        return text
