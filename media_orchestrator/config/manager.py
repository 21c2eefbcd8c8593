"""
Layered configuration for media processing.

Resolution order per path: compiled defaults -> optional JSON file (deep
merge) -> environment variables (applied last, typed, validated). Runtime
``set`` calls are validated and pushed to registered watchers.
"""

import copy
import json
import logging
import os
from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import TypeAdapter, ValidationError

from media_orchestrator.config.defaults import DEFAULT_CONFIG, DEFAULT_VALIDATORS, Validator
from media_orchestrator.config.settings import settings
from media_orchestrator.core.exceptions import ConfigError
from media_orchestrator.utils.dict_utils import (
    MISSING,
    deep_merge,
    get_path,
    iter_leaves,
    paths_overlap,
    set_path,
    split_path,
)

logger = logging.getLogger(__name__)

ConfigWatcher = Callable[[Any, Any, str], None]

_ENV_ADAPTERS: Dict[type, TypeAdapter] = {
    bool: TypeAdapter(bool),
    int: TypeAdapter(int),
    float: TypeAdapter(float),
    list: TypeAdapter(List[Any]),
    dict: TypeAdapter(Dict[str, Any]),
}


def coerce_env_value(raw: str, template: Any) -> Any:
    """Convert an environment string to the type of the default it overrides.

    Scalars use pydantic's lax string parsing (so booleans accept
    true/false/yes/no/on/off/1/0); lists and objects are parsed as JSON.

    Raises:
        ValidationError: If ``raw`` does not parse as the template's type
    """
    adapter = _ENV_ADAPTERS.get(type(template))
    if adapter is None:
        return raw
    if isinstance(template, (list, dict)):
        return adapter.validate_json(raw)
    return adapter.validate_strings(raw.strip())


class ConfigurationManager:
    """Centralized configuration for processors, providers and performance settings"""

    def __init__(
        self,
        config_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        env_prefix: Optional[str] = None,
        defaults: Optional[Dict[str, Dict[str, Any]]] = None,
        validators: Optional[Dict[str, Validator]] = None,
    ):
        """Create a manager; nothing is read until ``initialize``.

        Args:
            config_path: JSON override file (defaults to ``settings.config_path``)
            environ: Environment mapping (defaults to ``os.environ`` at load time)
            env_prefix: Prefix of override variables (defaults to ``settings.env_prefix``)
            defaults: Compiled defaults replacing ``DEFAULT_CONFIG``
            validators: Extra per-path validators
        """
        self.config_path = config_path if config_path is not None else settings.config_path
        self.env_prefix = env_prefix if env_prefix is not None else settings.env_prefix
        self._environ = environ
        self._defaults = copy.deepcopy(defaults if defaults is not None else DEFAULT_CONFIG)
        self._validators: Dict[str, Validator] = dict(DEFAULT_VALIDATORS)
        self._validators.update(validators or {})
        self._config: Dict[str, Any] = copy.deepcopy(self._defaults)
        self._sources: Dict[str, str] = {}
        self._watchers: Dict[str, List[ConfigWatcher]] = defaultdict(list)
        self.initialized = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load the file and environment layers once"""
        if self.initialized:
            return
        self.reload()

    def reload(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """Rebuild the resolved configuration from all three layers.

        Args:
            environ: Optional replacement environment mapping
        """
        if environ is not None:
            self._environ = environ
        self._config = copy.deepcopy(self._defaults)
        self._sources = {}
        self._load_config_file()
        self._apply_environment_overrides()
        self.initialized = True
        logger.debug(
            "Configuration loaded (file=%s, overrides=%d)",
            self.config_path,
            len(self._sources),
        )

    def _load_config_file(self) -> None:
        if not self.config_path:
            return
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                file_config = json.load(f)
        except FileNotFoundError:
            logger.debug("No configuration file at %s", self.config_path)
            return
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load config file %s: %s", self.config_path, e)
            return

        if not isinstance(file_config, dict):
            logger.warning(
                "Ignoring config file %s: top level must be an object", self.config_path
            )
            return

        for section, values in file_config.items():
            previous = copy.deepcopy(self._config)
            if isinstance(values, dict) and isinstance(self._config.get(section), dict):
                self._config[section] = deep_merge(self._config[section], values)
            else:
                self._config[section] = copy.deepcopy(values)

            touched = [section]
            if isinstance(values, dict):
                touched = [f"{section}.{leaf}" for leaf, _ in iter_leaves(values)] or touched
            for path in touched:
                self._sources[path] = "file"

            for path in self._affected_validators(section):
                if not any(paths_overlap(path, t) for t in touched):
                    continue
                value = get_path(self._config, path)
                if value is MISSING:
                    continue
                try:
                    set_path(self._config, path, self._run_validator(path, value))
                except ConfigError as e:
                    logger.warning("Discarding file override: %s", e.message)
                    restored = get_path(previous, path)
                    if restored is not MISSING:
                        set_path(self._config, path, restored)
                    self._sources.pop(path, None)

    def _env_var_name(self, path: str) -> str:
        return self.env_prefix + "__".join(split_path(path)).upper()

    def _apply_environment_overrides(self) -> None:
        environ = self._environ if self._environ is not None else os.environ
        for path, template in iter_leaves(self._defaults):
            env_var = self._env_var_name(path)
            raw = environ.get(env_var)
            if raw is None:
                continue
            try:
                value = coerce_env_value(raw, template)
                self._commit(path, value)
            except ValidationError as e:
                details = "; ".join(err["msg"] for err in e.errors())
                logger.warning("Invalid environment variable %s: %s (%s)", env_var, raw, details)
                continue
            except ConfigError as e:
                logger.warning("Invalid environment variable %s: %s", env_var, e.message)
                continue
            self._sources[path] = "env"

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def register_validator(self, path: str, validator: Validator) -> None:
        """Attach a validator (TypeAdapter or predicate) to a path"""
        split_path(path)
        self._validators[path] = validator

    def _affected_validators(self, path: str) -> List[str]:
        return [p for p in self._validators if paths_overlap(p, path)]

    def _run_validator(self, path: str, value: Any) -> Any:
        validator = self._validators.get(path)
        if validator is None:
            return value
        if isinstance(validator, TypeAdapter):
            try:
                return validator.validate_python(value)
            except ValidationError as e:
                details = "; ".join(err["msg"] for err in e.errors())
                raise ConfigError(
                    f"Invalid configuration value for {path}: {value!r} ({details})",
                    path=path,
                ) from e
        if not validator(value):
            raise ConfigError(f"Invalid configuration value for {path}: {value!r}", path=path)
        return value

    def validate_config(self) -> List[str]:
        """Check every registered validator against the resolved configuration.

        Returns:
            List of violation messages (empty when valid)
        """
        errors = []
        for path in self._validators:
            value = get_path(self._config, path)
            if value is MISSING:
                continue
            try:
                self._run_validator(path, value)
            except ConfigError as e:
                errors.append(e.message)
        return errors

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, path: str, default: Any = None) -> Any:
        """Return the resolved value at ``path`` or ``default``.

        The returned value is a copy; mutating it does not change the configuration.
        """
        value = get_path(self._config, path)
        if value is MISSING or value is None:
            return default
        return copy.deepcopy(value)

    def _commit(self, path: str, value: Any) -> Any:
        current = get_path(self._config, path)
        if isinstance(value, dict) and isinstance(current, dict):
            value = deep_merge(current, value)

        section = split_path(path)[0]
        candidate = copy.deepcopy(self._config)
        set_path(candidate, path, value)
        for validator_path in self._affected_validators(path):
            checked = get_path(candidate, validator_path)
            if checked is MISSING:
                continue
            set_path(candidate, validator_path, self._run_validator(validator_path, checked))

        self._config[section] = candidate[section]
        return get_path(self._config, path)

    def set(self, path: str, value: Any) -> None:
        """Validate and commit a runtime override, then notify watchers.

        Args:
            path: Dot-separated configuration path
            value: New value; dicts deep-merge into an existing dict value

        Raises:
            ConfigError: If the value fails its validator (prior value retained)
        """
        try:
            split_path(path)
        except ValueError as e:
            raise ConfigError(str(e), path=path) from e

        previous = copy.deepcopy(self._config)
        self._commit(path, value)
        self._sources[path] = "runtime"
        self._notify_watchers(path, previous)

    def get_processor_config(self, media_type: str) -> Dict[str, Any]:
        """Base section merged with the media type's section"""
        section = getattr(media_type, "value", media_type)
        return deep_merge(self.get("base", {}), self.get(section, {}))

    def get_provider_config(self, provider_name: str) -> Dict[str, Any]:
        return self.get(f"providers.{provider_name}", {})

    def get_performance_config(self) -> Dict[str, Any]:
        return self.get("performance", {})

    def is_feature_enabled(self, path: str) -> bool:
        """True only for True, "true" or 1 at ``path``"""
        value = get_path(self._config, path)
        if isinstance(value, bool):
            return value
        return value == "true" or (isinstance(value, int) and value == 1)

    def get_source(self, path: str) -> str:
        """Which layer last supplied ``path``: default, file, env or runtime"""
        for candidate, source in self._sources.items():
            if paths_overlap(candidate, path):
                return source
        return "default"

    @property
    def sections(self) -> List[str]:
        return list(self._config.keys())

    def get_config_summary(self) -> Dict[str, Any]:
        """Resolved value of every section"""
        return {section: self.get(section) for section in self.sections}

    def reset_to_defaults(self) -> None:
        """Drop file, environment and runtime overrides"""
        self._config = copy.deepcopy(self._defaults)
        self._sources = {}

    def save_config(self, path: Optional[str] = None) -> str:
        """Write the resolved configuration as JSON.

        Returns:
            The path written to

        Raises:
            ConfigError: If no path is known or writing fails
        """
        target = path or self.config_path
        if not target:
            raise ConfigError("No configuration path to save to")
        try:
            with open(target, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2)
        except OSError as e:
            raise ConfigError(f"Failed to save configuration: {e}") from e
        logger.info("Configuration saved to %s", target)
        return target

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def watch(self, path: str, callback: ConfigWatcher) -> None:
        """Invoke ``callback(new_value, old_value, path)`` after every successful set.

        Fires on every set of ``path`` itself, and on sets of a parent or
        child path when they change the value at ``path``.
        """
        self._watchers[path].append(callback)

    def unwatch(self, path: str, callback: ConfigWatcher) -> None:
        callbacks = self._watchers.get(path, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _notify_watchers(self, path: str, previous: Dict[str, Any]) -> None:
        for watched, callbacks in list(self._watchers.items()):
            if not callbacks or not paths_overlap(watched, path):
                continue
            old_value = get_path(previous, watched, None)
            new_value = get_path(self._config, watched, None)
            if watched != path and old_value == new_value:
                continue
            for callback in list(callbacks):
                try:
                    callback(copy.deepcopy(new_value), copy.deepcopy(old_value), watched)
                except Exception:
                    logger.exception("Configuration watcher error for %s", watched)
