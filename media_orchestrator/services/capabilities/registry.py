"""
Capability registry with priority-ordered providers and automatic fallback
"""

import asyncio
import functools
import inspect
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from media_orchestrator.config.manager import ConfigurationManager
from media_orchestrator.core.exceptions import CapabilityUnavailable, ProviderChainExhausted
from media_orchestrator.models.media import Capability

logger = logging.getLogger(__name__)

CapabilityName = Union[Capability, str]


def _capability_key(name: CapabilityName) -> str:
    return getattr(name, "value", name)


def _is_async(fn: Callable) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


@dataclass(frozen=True)
class Provider:
    """A concrete backend for one capability.

    ``execute(input, options)`` may be sync or async. ``is_ready`` reports
    provider-specific readiness (credentials present, client reachable).
    ``group`` names the ``providers.<group>`` config section whose
    ``enabled`` flag gates it.
    """

    name: str
    execute: Callable[..., Any]
    priority: int = 100
    group: Optional[str] = None
    is_ready: Optional[Callable[[], bool]] = None
    cleanup: Optional[Callable[[], Any]] = None
    timeout_ms: Optional[int] = None


@dataclass(frozen=True)
class CapabilityDescriptor:
    """Providers for one capability, ordered by priority"""

    name: str
    providers: Tuple[Provider, ...] = ()
    description: str = ""

    def with_provider(self, provider: Provider) -> "CapabilityDescriptor":
        others = tuple(p for p in self.providers if p.name != provider.name)
        ordered = sorted(others + (provider,), key=lambda p: p.priority)
        return replace(self, providers=tuple(ordered))


@dataclass
class ProviderFailure:
    provider: str
    message: str
    error_type: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CapabilityResult:
    """Outcome of a successful capability execution"""

    capability: str
    provider: str
    result: Any
    fallback_used: bool = False
    failures: List[ProviderFailure] = field(default_factory=list)
    group: Optional[str] = None


class CapabilityRegistry:
    """Holds providers per capability and executes them with fallback.

    A provider is available when it is not manually disabled, its config
    group is enabled and it reports ready.
    """

    def __init__(self, config: Optional[ConfigurationManager] = None):
        self.config = config
        self._capabilities: Dict[str, CapabilityDescriptor] = {}
        self._disabled: Dict[Tuple[str, str], str] = {}
        self._stats: Dict[str, int] = {
            "executions": 0,
            "attempts": 0,
            "failures": 0,
            "fallbacks": 0,
        }

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_capability(
        self, name: CapabilityName, description: str = ""
    ) -> CapabilityDescriptor:
        key = _capability_key(name)
        if key not in self._capabilities:
            self._capabilities[key] = CapabilityDescriptor(name=key, description=description)
            logger.debug("Registered capability %s", key)
        return self._capabilities[key]

    def register_provider(self, capability: CapabilityName, provider: Provider) -> None:
        """Add (or replace, by name) a provider for ``capability``"""
        descriptor = self.register_capability(capability)
        self._capabilities[descriptor.name] = descriptor.with_provider(provider)
        logger.info(
            "🔌 Registered provider %s for %s (priority %d)",
            provider.name,
            descriptor.name,
            provider.priority,
        )

    def get_capability(self, name: CapabilityName) -> Optional[CapabilityDescriptor]:
        return self._capabilities.get(_capability_key(name))

    @property
    def capabilities(self) -> List[str]:
        return list(self._capabilities.keys())

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def set_provider_enabled(
        self, capability: CapabilityName, provider_name: str, enabled: bool
    ) -> None:
        key = (_capability_key(capability), provider_name)
        if enabled:
            self._disabled.pop(key, None)
        else:
            self._disabled[key] = "Manually disabled"

    def _group_enabled(self, provider: Provider) -> bool:
        if not provider.group or self.config is None:
            return True
        return self.config.get(f"providers.{provider.group}.enabled", True) is not False

    def _check_ready(self, provider: Provider) -> bool:
        if provider.is_ready is None:
            return True
        try:
            return bool(provider.is_ready())
        except Exception as e:
            logger.warning("Readiness check failed for provider %s: %s", provider.name, e)
            return False

    def _unavailable_reason(self, capability: str, provider: Provider) -> Optional[str]:
        reason = self._disabled.get((capability, provider.name))
        if reason:
            return reason
        if not self._group_enabled(provider):
            return f"Provider group {provider.group} disabled in configuration"
        if not self._check_ready(provider):
            return "Provider not ready"
        return None

    def get_available_providers(self, capability: CapabilityName) -> List[Provider]:
        descriptor = self.get_capability(capability)
        if descriptor is None:
            return []
        return [
            p for p in descriptor.providers
            if self._unavailable_reason(descriptor.name, p) is None
        ]

    def is_available(self, capability: CapabilityName) -> bool:
        return bool(self.get_available_providers(capability))

    def test_availability(self) -> Dict[str, Dict[str, bool]]:
        """Probe readiness of every provider once, recording reasons for the unready ones.

        Returns:
            ``{capability: {provider: ready}}``
        """
        report: Dict[str, Dict[str, bool]] = {}
        for name, descriptor in self._capabilities.items():
            report[name] = {}
            for provider in descriptor.providers:
                ready = self._check_ready(provider)
                report[name][provider.name] = ready
                key = (name, provider.name)
                if not ready:
                    self._disabled.setdefault(key, "Provider not ready")
                elif self._disabled.get(key) == "Provider not ready":
                    del self._disabled[key]
        return report

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _fallback_settings(self) -> Tuple[bool, int, int]:
        if self.config is None:
            return True, 3, 30000
        return (
            self.config.get("providers.fallback.enable_automatic_fallback", True),
            self.config.get("providers.fallback.max_fallback_attempts", 3),
            self.config.get("providers.fallback.provider_timeout_ms", 30000),
        )

    async def _call(self, provider: Provider, payload: Any, options: Dict[str, Any]) -> Any:
        if _is_async(provider.execute):
            return await provider.execute(payload, options)
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None, functools.partial(provider.execute, payload, options)
        )
        if inspect.isawaitable(result):
            result = await result
        return result

    async def execute_capability(
        self,
        capability: CapabilityName,
        payload: Any,
        options: Optional[Dict[str, Any]] = None,
    ) -> CapabilityResult:
        """Run ``capability`` on the first provider that succeeds.

        Providers are tried in priority order; a failure (including a
        timeout) is logged and the next provider is tried.

        Raises:
            CapabilityUnavailable: If no provider is available
            ProviderChainExhausted: If every attempted provider failed
        """
        key = _capability_key(capability)
        providers = self.get_available_providers(key)
        if not providers:
            raise CapabilityUnavailable(
                f"No available providers for capability: {key}", capability=key
            )

        fallback_enabled, max_attempts, default_timeout_ms = self._fallback_settings()
        chain = providers[: max(1, max_attempts)] if fallback_enabled else providers[:1]

        self._stats["executions"] += 1
        failures: List[ProviderFailure] = []
        for index, provider in enumerate(chain):
            self._stats["attempts"] += 1
            timeout_s = (provider.timeout_ms or default_timeout_ms) / 1000
            try:
                result = await asyncio.wait_for(
                    self._call(provider, payload, dict(options or {})), timeout_s
                )
            except asyncio.TimeoutError:
                failures.append(
                    ProviderFailure(provider.name, f"timed out after {timeout_s:g}s", "TimeoutError")
                )
            except Exception as e:
                failures.append(ProviderFailure(provider.name, str(e), type(e).__name__))
            else:
                if index > 0:
                    self._stats["fallbacks"] += 1
                return CapabilityResult(
                    capability=key,
                    provider=provider.name,
                    result=result,
                    fallback_used=index > 0,
                    failures=failures,
                    group=provider.group,
                )

            self._stats["failures"] += 1
            logger.warning(
                "⚠️ Provider %s failed for %s, trying next fallback: %s",
                provider.name,
                key,
                failures[-1].message,
            )

        raise ProviderChainExhausted(key, failures)

    # ------------------------------------------------------------------
    # Reporting and teardown
    # ------------------------------------------------------------------

    def get_status_report(self) -> Dict[str, Any]:
        capabilities: Dict[str, Any] = {}
        groups: Dict[str, Dict[str, int]] = {}
        disabled: List[Dict[str, Any]] = []
        provider_names = set()

        for name, descriptor in self._capabilities.items():
            available = 0
            for provider in descriptor.providers:
                provider_names.add(provider.name)
                reason = self._unavailable_reason(name, provider)
                group = groups.setdefault(provider.group or "default", {"total": 0, "available": 0})
                group["total"] += 1
                if reason is None:
                    available += 1
                    group["available"] += 1
                else:
                    disabled.append({
                        "name": provider.name,
                        "capability": name,
                        "group": provider.group,
                        "reason": reason,
                    })
            capabilities[name] = {
                "total": len(descriptor.providers),
                "available": available,
                "status": "available" if available else "unavailable",
            }

        return {
            "total_providers": len(provider_names),
            "capabilities": capabilities,
            "providers": groups,
            "disabled_providers": disabled,
            "stats": dict(self._stats),
        }

    async def cleanup(self) -> None:
        """Run each provider's cleanup hook once"""
        seen = set()
        for descriptor in self._capabilities.values():
            for provider in descriptor.providers:
                if provider.cleanup is None or provider.name in seen:
                    continue
                seen.add(provider.name)
                try:
                    result = provider.cleanup()
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.warning("Cleanup failed for provider %s: %s", provider.name, e)
