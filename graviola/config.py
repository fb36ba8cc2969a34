"""Configuration model: loading from YAML, defaults and validation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any

import yaml

from graviola.timeparsing import TimeParsingError, parse_duration

__all__ = [
    "ConfigError",
    "APIConfig",
    "LogConfig",
    "MergeStrategyConfig",
    "QueryConfig",
    "TimeWindowConfig",
    "RemoteConfig",
    "RemoteGroupsConfig",
    "StoragesConfig",
    "GraviolaConfig",
    "parse",
    "DEFAULT_PORT",
    "DEFAULT_LOG_LEVEL",
    "MERGE_STRATEGY_ALWAYS_MERGE",
    "MERGE_STRATEGY_KEEP_BIGGEST",
    "DEFAULT_MERGE_STRATEGY_TYPE",
    "DEFAULT_QUERY_MAX_SAMPLES",
    "DEFAULT_QUERY_LOOKBACK_DELTA",
    "DEFAULT_QUERY_CONCURRENT_QUERIES",
    "DEFAULT_TIMEOUT",
    "STRATEGY_FAIL_ALL",
    "STRATEGY_PARTIAL_RESPONSE",
    "DEFAULT_ON_FAIL_STRATEGY",
]

DEFAULT_PORT = 9197

DEFAULT_LOG_LEVEL = "info"
SUPPORTED_LOG_LEVELS = ("debug", "info", "warn", "error")

MERGE_STRATEGY_ALWAYS_MERGE = "always_merge"
MERGE_STRATEGY_KEEP_BIGGEST = "keep_biggest"
DEFAULT_MERGE_STRATEGY_TYPE = MERGE_STRATEGY_KEEP_BIGGEST
SUPPORTED_MERGE_STRATEGIES = (MERGE_STRATEGY_KEEP_BIGGEST, MERGE_STRATEGY_ALWAYS_MERGE)

DEFAULT_QUERY_MAX_SAMPLES = 100000
DEFAULT_QUERY_LOOKBACK_DELTA = "5m"
DEFAULT_QUERY_CONCURRENT_QUERIES = 20
DEFAULT_TIMEOUT = "1m"

STRATEGY_FAIL_ALL = "fail_all"
STRATEGY_PARTIAL_RESPONSE = "partial_response"
DEFAULT_ON_FAIL_STRATEGY = STRATEGY_FAIL_ALL
SUPPORTED_FAILURE_STRATEGIES = (STRATEGY_FAIL_ALL, STRATEGY_PARTIAL_RESPONSE)

_ADDRESS_RE = re.compile(r"https?://.+")


class ConfigError(ValueError):
    """Raised when a configuration cannot be loaded or is not valid."""


class _Loader(yaml.SafeLoader):
    """Safe loader that keeps timestamps as plain strings."""


_Loader.add_constructor("tag:yaml.org,2002:timestamp", yaml.SafeLoader.construct_scalar)


def _mapping(node: Any, where: str) -> dict:
    if node is None:
        return {}
    if not isinstance(node, dict):
        raise ConfigError(f"{where}: expected a mapping, got {type(node).__name__}")
    return node


def _sequence(node: Any, where: str) -> list:
    if node is None:
        return []
    if not isinstance(node, list):
        raise ConfigError(f"{where}: expected a list, got {type(node).__name__}")
    return node


def _as_str(node: Any, where: str) -> str:
    if node is None:
        return ""
    if isinstance(node, bool):
        return "true" if node else "false"
    if isinstance(node, (str, int, float)):
        return str(node)
    raise ConfigError(f"{where}: expected a scalar, got {type(node).__name__}")


def _as_int(node: Any, where: str) -> int:
    if node is None:
        return 0
    if isinstance(node, bool) or not isinstance(node, int):
        raise ConfigError(f"{where}: expected an integer, got {node!r}")
    return node


@dataclass
class APIConfig:
    """Settings of the HTTP API."""

    port: int = 0

    def fill_defaults(self) -> APIConfig:
        return replace(self, port=self.port or DEFAULT_PORT)

    def validate(self) -> APIConfig:
        if self.port == 0:
            raise ConfigError("port cannot be zero")
        return self

    @classmethod
    def _from_yaml(cls, node: Any) -> APIConfig:
        data = _mapping(node, "api")
        return cls(port=_as_int(data.get("port"), "api.port"))

    def _to_dict(self) -> dict:
        return {"port": self.port}


@dataclass
class LogConfig:
    """Settings of the logger."""

    level: str = ""

    def fill_defaults(self) -> LogConfig:
        return replace(self, level=self.level or DEFAULT_LOG_LEVEL)

    def validate(self) -> LogConfig:
        if self.level.lower() not in SUPPORTED_LOG_LEVELS:
            raise ConfigError(f"unsupported log level {self.level}")
        return self

    @classmethod
    def _from_yaml(cls, node: Any) -> LogConfig:
        data = _mapping(node, "log")
        return cls(level=_as_str(data.get("level"), "log.level"))

    def _to_dict(self) -> dict:
        return {"level": self.level}


@dataclass
class MergeStrategyConfig:
    """How results coming from several storages are merged."""

    strategy: str = ""

    def fill_defaults(self) -> MergeStrategyConfig:
        return replace(self, strategy=self.strategy or DEFAULT_MERGE_STRATEGY_TYPE)

    def validate(self) -> MergeStrategyConfig:
        if self.strategy not in SUPPORTED_MERGE_STRATEGIES:
            raise ConfigError(f"merge strategy Strategy {self.strategy} is invalid")
        return self

    @classmethod
    def _from_yaml(cls, node: Any) -> MergeStrategyConfig:
        data = _mapping(node, "merge_strategy")
        return cls(strategy=_as_str(data.get("type"), "merge_strategy.type"))

    def _to_dict(self) -> dict:
        return {"type": self.strategy}


@dataclass
class QueryConfig:
    """Limits applied by the query engine."""

    max_samples: int = 0
    lookback_delta: str = ""
    concurrent_queries: int = 0
    timeout: str = ""

    def fill_defaults(self) -> QueryConfig:
        return replace(
            self,
            max_samples=self.max_samples or DEFAULT_QUERY_MAX_SAMPLES,
            lookback_delta=self.lookback_delta or DEFAULT_QUERY_LOOKBACK_DELTA,
            concurrent_queries=self.concurrent_queries or DEFAULT_QUERY_CONCURRENT_QUERIES,
            timeout=self.timeout or DEFAULT_TIMEOUT,
        )

    def validate(self) -> QueryConfig:
        if self.max_samples <= 0:
            raise ConfigError("max_samples cannot be <= 0")

        if self.lookback_delta == "":
            raise ConfigError("lookback_delta cannot empty")

        try:
            lookback = parse_duration(self.lookback_delta)
        except TimeParsingError as exc:
            raise ConfigError(f"error validating query lookback_delta: {exc}") from exc

        if lookback == timedelta(0):
            raise ConfigError("error validating query lookback_delta: it cannot be zero")

        if self.concurrent_queries <= 0:
            raise ConfigError("error validating query concurrent_queries: it cannot be <= 0")

        try:
            parse_duration(self.timeout)
        except TimeParsingError as exc:
            raise ConfigError(f"timeout must be a valid number: {exc}") from exc

        return self

    def lookback_delta_duration(self) -> timedelta:
        """The lookback delta as a duration; raises TimeParsingError if malformed."""
        return parse_duration(self.lookback_delta)

    def timeout_duration(self) -> timedelta:
        """The query timeout as a duration; raises TimeParsingError if malformed."""
        return parse_duration(self.timeout)

    @classmethod
    def _from_yaml(cls, node: Any) -> QueryConfig:
        data = _mapping(node, "query")
        return cls(
            max_samples=_as_int(data.get("max_samples"), "query.max_samples"),
            lookback_delta=_as_str(data.get("lookback_delta"), "query.lookback_delta"),
            concurrent_queries=_as_int(
                data.get("max_concurrent_queries"), "query.max_concurrent_queries"
            ),
            timeout=_as_str(data.get("timeout"), "query.timeout"),
        )

    def _to_dict(self) -> dict:
        return {
            "max_samples": self.max_samples,
            "lookback_delta": self.lookback_delta,
            "max_concurrent_queries": self.concurrent_queries,
            "timeout": self.timeout,
        }


@dataclass
class TimeWindowConfig:
    """A time window given by a start and an end expression."""

    start: str = ""
    end: str = ""

    def validate(self) -> TimeWindowConfig:
        return self

    @classmethod
    def _from_yaml(cls, node: Any, where: str) -> TimeWindowConfig:
        data = _mapping(node, where)
        return cls(
            start=_as_str(data.get("start"), f"{where}.start"),
            end=_as_str(data.get("end"), f"{where}.end"),
        )

    def _to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


@dataclass
class RemoteConfig:
    """A single remote storage server."""

    name: str = ""
    address: str = ""
    path_prefix: str = ""
    time_window: TimeWindowConfig = field(default_factory=TimeWindowConfig)

    def fill_defaults(self) -> RemoteConfig:
        return replace(self)

    def validate(self) -> RemoteConfig:
        if self.address == "":
            raise ConfigError("address of server cannot be nil")

        if self.name == "":
            raise ConfigError("name of server cannot be nil")

        if _ADDRESS_RE.fullmatch(self.address) is None:
            raise ConfigError("address should start with http:// or https://")

        return self

    @classmethod
    def _from_yaml(cls, node: Any) -> RemoteConfig:
        data = _mapping(node, "remote")
        return cls(
            name=_as_str(data.get("name"), "remote.name"),
            address=_as_str(data.get("address"), "remote.address"),
            path_prefix=_as_str(data.get("path_prefix"), "remote.path_prefix"),
            time_window=TimeWindowConfig._from_yaml(
                data.get("time_window"), "remote.time_window"
            ),
        )

    def _to_dict(self) -> dict:
        return {
            "name": self.name,
            "address": self.address,
            "path_prefix": self.path_prefix,
            "time_window": self.time_window._to_dict(),
        }


@dataclass
class RemoteGroupsConfig:
    """A named group of remotes queried together."""

    name: str = ""
    remotes: list[RemoteConfig] = field(default_factory=list)
    time_window: TimeWindowConfig = field(default_factory=TimeWindowConfig)
    on_query_fail: str = ""

    def fill_defaults(self) -> RemoteGroupsConfig:
        return replace(
            self,
            remotes=list(self.remotes),
            on_query_fail=self.on_query_fail or DEFAULT_ON_FAIL_STRATEGY,
        )

    def validate(self) -> RemoteGroupsConfig:
        if self.name == "":
            raise ConfigError("group name cannot be empty")

        if self.on_query_fail.lower() not in SUPPORTED_FAILURE_STRATEGIES:
            supported = " ".join(SUPPORTED_FAILURE_STRATEGIES)
            raise ConfigError(f"on_query_fail should be one of [{supported}]")

        if not self.remotes:
            raise ConfigError("remotes cannot be empty")

        for remote in self.remotes:
            remote.validate()

        seen: set[str] = set()
        for remote in self.remotes:
            if remote.name in seen:
                raise ConfigError(f"remote name {remote.name} is duplicated")
            seen.add(remote.name)

        return self

    @classmethod
    def _from_yaml(cls, node: Any) -> RemoteGroupsConfig:
        data = _mapping(node, "group")
        return cls(
            name=_as_str(data.get("name"), "group.name"),
            remotes=[
                RemoteConfig._from_yaml(item)
                for item in _sequence(data.get("remotes"), "group.remotes")
            ],
            time_window=TimeWindowConfig._from_yaml(
                data.get("time_window"), "group.time_window"
            ),
            on_query_fail=_as_str(data.get("on_query_fail"), "group.on_query_fail"),
        )

    def _to_dict(self) -> dict:
        return {
            "name": self.name,
            "remotes": [remote._to_dict() for remote in self.remotes],
            "time_window": self.time_window._to_dict(),
            "on_query_fail": self.on_query_fail,
        }


@dataclass
class StoragesConfig:
    """All storage groups and how their results are merged."""

    merge: MergeStrategyConfig = field(default_factory=MergeStrategyConfig)
    groups: list[RemoteGroupsConfig] = field(default_factory=list)

    def fill_defaults(self) -> StoragesConfig:
        return replace(
            self,
            merge=self.merge.fill_defaults(),
            groups=[group.fill_defaults() for group in self.groups],
        )

    def validate(self) -> StoragesConfig:
        if not self.groups:
            raise ConfigError("cannot have empty groups list")

        self.merge.validate()

        for group in self.groups:
            group.validate()

        seen: set[str] = set()
        for group in self.groups:
            if group.name in seen:
                raise ConfigError(f"group name {group.name} is duplicated")
            seen.add(group.name)

        return self

    @classmethod
    def _from_yaml(cls, node: Any) -> StoragesConfig:
        data = _mapping(node, "storages")
        return cls(
            merge=MergeStrategyConfig._from_yaml(data.get("merge_strategy")),
            groups=[
                RemoteGroupsConfig._from_yaml(item)
                for item in _sequence(data.get("groups"), "storages.groups")
            ],
        )

    def _to_dict(self) -> dict:
        return {
            "merge_strategy": self.merge._to_dict(),
            "groups": [group._to_dict() for group in self.groups],
        }


@dataclass
class GraviolaConfig:
    """The whole application configuration."""

    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
    storages: StoragesConfig = field(default_factory=StoragesConfig)
    query: QueryConfig = field(default_factory=QueryConfig)

    def fill_defaults(self) -> GraviolaConfig:
        return replace(
            self,
            api=self.api.fill_defaults(),
            log=self.log.fill_defaults(),
            storages=self.storages.fill_defaults(),
            query=self.query.fill_defaults(),
        )

    def validate(self) -> GraviolaConfig:
        self.api.validate()
        self.log.validate()
        self.storages.validate()
        self.query.validate()

        names: set[str] = set()
        for group in self.storages.groups:
            if group.name in names:
                raise ConfigError(f"repeated group name: {group.name}")
            names.add(group.name)

        return self

    def to_dict(self) -> dict:
        """The configuration as plain data, keyed as in the YAML file."""
        return {
            "api": self.api._to_dict(),
            "log": self.log._to_dict(),
            "storages": self.storages._to_dict(),
            "query": self.query._to_dict(),
        }


def parse(data: str | bytes) -> GraviolaConfig:
    """Load a configuration from YAML text, without defaults or validation."""
    try:
        document = yaml.load(data, Loader=_Loader)  # noqa: S506 - safe loader subclass
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}") from exc

    root = _mapping(document, "config")
    return GraviolaConfig(
        api=APIConfig._from_yaml(root.get("api")),
        log=LogConfig._from_yaml(root.get("log")),
        storages=StoragesConfig._from_yaml(root.get("storages")),
        query=QueryConfig._from_yaml(root.get("query")),
    )