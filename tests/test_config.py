from datetime import timedelta

import pytest
import yaml

from graviola.config import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_MERGE_STRATEGY_TYPE,
    DEFAULT_ON_FAIL_STRATEGY,
    DEFAULT_PORT,
    DEFAULT_QUERY_CONCURRENT_QUERIES,
    DEFAULT_QUERY_LOOKBACK_DELTA,
    DEFAULT_QUERY_MAX_SAMPLES,
    DEFAULT_TIMEOUT,
    STRATEGY_FAIL_ALL,
    APIConfig,
    ConfigError,
    GraviolaConfig,
    LogConfig,
    MergeStrategyConfig,
    QueryConfig,
    RemoteConfig,
    RemoteGroupsConfig,
    StoragesConfig,
    TimeWindowConfig,
    parse,
)
from graviola.timeparsing import TimeParsingError

TEST_CONFIG = """
api:
  port: 8091

query:
  max_samples: 12345
  timeout: 12m

log:
  level: "error"

storages:
  merge_strategy:
    type: "type 2"
  groups:
    - name: "group 1 name"
      on_query_fail: fail_all
      time_window:
        start: "now-6h"
        end: "now"
      remotes:
        - name: "my server 1"
          address: "https://localhost:9090"
          path_prefix: ""
          timeout: 35s
    - name: "group 2 name"
      on_query_fail: partial_response
      time_window:
        start: "now-16h"
        end: "now-1h"
      remotes:
        - name: "my server 11"
          address: "https://localhost:9090"
          path_prefix: "/here"
          timeout: 35s
        - name: "my server 12"
          address: "https://localhost:9092"
          path_prefix: "/hello/api/"
          timeout: 35s
"""


def _two_groups(with_strategies=True):
    return [
        RemoteGroupsConfig(
            name="group 1 name",
            on_query_fail="fail_all" if with_strategies else "",
            time_window=TimeWindowConfig(start="now-6h", end="now"),
            remotes=[RemoteConfig(name="my server 1", address="https://localhost:9090")],
        ),
        RemoteGroupsConfig(
            name="group 2 name",
            on_query_fail="partial_response" if with_strategies else "",
            time_window=TimeWindowConfig(start="now-16h", end="now-1h"),
            remotes=[
                RemoteConfig(
                    name="my server 11", address="https://localhost:9090", path_prefix="/here"
                ),
                RemoteConfig(
                    name="my server 12",
                    address="https://localhost:9092",
                    path_prefix="/hello/api/",
                ),
            ],
        ),
    ]


# api


def test_api_validate():
    with pytest.raises(ConfigError):
        APIConfig(port=0).validate()

    assert APIConfig(port=100).validate().port == 100
    assert APIConfig().fill_defaults().validate().port == DEFAULT_PORT


def test_api_default_values():
    assert APIConfig().fill_defaults().port == DEFAULT_PORT
    assert DEFAULT_PORT == 9197
    assert APIConfig(port=8091).fill_defaults().port == 8091


# config


def test_parse_broken_yaml():
    with pytest.raises(ConfigError):
        parse(b"broken yaml")


def test_parse_invalid_syntax():
    with pytest.raises(ConfigError):
        parse("api: [unclosed")


def test_parse_wrong_type():
    with pytest.raises(ConfigError):
        parse("api:\n  port: abc\n")


def test_parse_full_config():
    expected = GraviolaConfig(
        api=APIConfig(port=8091),
        query=QueryConfig(max_samples=12345, timeout="12m"),
        log=LogConfig(level="error"),
        storages=StoragesConfig(
            merge=MergeStrategyConfig(strategy="type 2"),
            groups=_two_groups(),
        ),
    )
    assert parse(TEST_CONFIG) == expected
    assert parse(TEST_CONFIG.encode()) == expected


def test_parse_empty_document():
    assert parse("") == GraviolaConfig()


def test_validation():
    input_conf = GraviolaConfig(storages=StoragesConfig(groups=_two_groups()))
    sut = parse(yaml.safe_dump(input_conf.to_dict()))

    with pytest.raises(ConfigError):
        sut.validate()

    sut = sut.fill_defaults()
    assert sut.validate() is sut

    sut.storages.groups[0].name = sut.storages.groups[1].name
    with pytest.raises(ConfigError):
        sut.validate()


def test_fill_defaults_calls_it_on_children():
    input_conf = GraviolaConfig(storages=StoragesConfig(groups=_two_groups(False)))
    sut = parse(yaml.safe_dump(input_conf.to_dict())).fill_defaults()

    assert sut.api.port == DEFAULT_PORT
    assert sut.log.level == DEFAULT_LOG_LEVEL
    assert sut.storages.merge.strategy == DEFAULT_MERGE_STRATEGY_TYPE
    assert sut.query.max_samples == DEFAULT_QUERY_MAX_SAMPLES
    assert [g.on_query_fail for g in sut.storages.groups] == [DEFAULT_ON_FAIL_STRATEGY] * 2


def test_to_dict_round_trip():
    conf = parse(TEST_CONFIG).fill_defaults()
    assert parse(yaml.safe_dump(conf.to_dict())) == conf


def test_fill_defaults_does_not_mutate_original():
    conf = GraviolaConfig()
    filled = conf.fill_defaults()
    assert conf.api.port == 0
    assert filled.api.port == DEFAULT_PORT


# log


@pytest.mark.parametrize("value", ["debug", "info", "warn", "error", "Debug", "INFO", "WaRn"])
def test_log_accepts_specific_values(value):
    assert LogConfig(level=value).validate().level == value


@pytest.mark.parametrize(
    "value", ["panic", "warning", "", "something", "infodebug", "infoa"]
)
def test_log_rejects_other_values(value):
    with pytest.raises(ConfigError):
        LogConfig(level=value).validate()


def test_log_default_values():
    assert LogConfig().fill_defaults().level == DEFAULT_LOG_LEVEL
    assert DEFAULT_LOG_LEVEL == "info"


# merge strategy


@pytest.mark.parametrize("value", ["debug", "", "something", "keepbiggest", "alwaysmerge"])
def test_merge_strategy_rejects_other_names(value):
    with pytest.raises(ConfigError):
        MergeStrategyConfig(strategy=value).validate()


@pytest.mark.parametrize("value", ["always_merge", "keep_biggest"])
def test_merge_strategy_accepts_specific_names(value):
    assert MergeStrategyConfig(strategy=value).validate().strategy == value


def test_merge_strategy_default_values():
    assert MergeStrategyConfig().fill_defaults().strategy == DEFAULT_MERGE_STRATEGY_TYPE
    assert DEFAULT_MERGE_STRATEGY_TYPE == "keep_biggest"


# query


def test_query_defaults_are_valid():
    sut = QueryConfig().fill_defaults()
    assert sut.validate() is sut


@pytest.mark.parametrize(
    "sut",
    [
        QueryConfig(max_samples=-4).fill_defaults(),
        QueryConfig(
            concurrent_queries=2, lookback_delta="5m", timeout="1m", max_samples=-1
        ).fill_defaults(),
        QueryConfig(lookback_delta="something").fill_defaults(),
        QueryConfig(lookback_delta="0").fill_defaults(),
        QueryConfig(lookback_delta="-1ms").fill_defaults(),
        QueryConfig(lookback_delta="0s").fill_defaults(),
        QueryConfig(concurrent_queries=-1).fill_defaults(),
        QueryConfig(timeout="111").fill_defaults(),
        QueryConfig(timeout="111mo").fill_defaults(),
        QueryConfig(timeout="111y").fill_defaults(),
        QueryConfig(timeout="-111s").fill_defaults(),
    ],
)
def test_query_invalid(sut):
    with pytest.raises(ConfigError):
        sut.validate()


def test_query_empty_lookback_delta_is_invalid():
    sut = QueryConfig().fill_defaults()
    sut.lookback_delta = ""
    with pytest.raises(ConfigError):
        sut.validate()


def test_query_zero_concurrent_queries_is_invalid():
    sut = QueryConfig().fill_defaults()
    sut.concurrent_queries = 0
    with pytest.raises(ConfigError):
        sut.validate()


@pytest.mark.parametrize(
    "sut",
    [
        QueryConfig(max_samples=1, lookback_delta="1ms", concurrent_queries=1, timeout="3m"),
        QueryConfig(
            max_samples=84782, lookback_delta="17m", concurrent_queries=44, timeout="7s"
        ),
    ],
)
def test_query_valid(sut):
    assert sut.validate() is sut


def test_query_default_values():
    sut = QueryConfig().fill_defaults()
    assert sut.max_samples == DEFAULT_QUERY_MAX_SAMPLES
    assert sut.lookback_delta == DEFAULT_QUERY_LOOKBACK_DELTA
    assert sut.concurrent_queries == DEFAULT_QUERY_CONCURRENT_QUERIES
    assert sut.timeout == DEFAULT_TIMEOUT


def test_query_durations():
    sut = QueryConfig(lookback_delta="17s", timeout="3m").fill_defaults()
    assert sut.lookback_delta_duration() == timedelta(seconds=17)
    assert sut.timeout_duration() == timedelta(minutes=3)


def test_query_durations_raise_when_malformed():
    sut = QueryConfig(lookback_delta="bad", timeout="bad")
    with pytest.raises(TimeParsingError):
        sut.lookback_delta_duration()
    with pytest.raises(TimeParsingError):
        sut.timeout_duration()


# remote groups


@pytest.mark.parametrize(
    "value", ["fail_all", "partial_response", "Partial_Response", "FAIL_ALL"]
)
def test_on_query_fail_accepts_specific_values(value):
    sut = RemoteGroupsConfig(
        on_query_fail=value,
        name="some name",
        remotes=[RemoteConfig(name="some name", address="http://non-existent.something")],
    )
    assert sut.validate().on_query_fail == value


@pytest.mark.parametrize("value", ["FAILALL", "partialresponse", "", "anything"])
def test_on_query_fail_rejects_other_values(value):
    sut = RemoteGroupsConfig(
        on_query_fail=value,
        name="some name",
        remotes=[RemoteConfig(name="some name", address="http://non-existent.something")],
    )
    with pytest.raises(ConfigError):
        sut.validate()


@pytest.mark.parametrize(
    "sut",
    [
        RemoteGroupsConfig(on_query_fail="fail_all"),
        RemoteGroupsConfig(name="group 1"),
        RemoteGroupsConfig(name="group 1", on_query_fail="fail_all"),
        RemoteGroupsConfig(
            name="group 1",
            on_query_fail="fail_all",
            remotes=[
                RemoteConfig(name="some name", address="http://non-existent.something"),
                RemoteConfig(name="some name2", address="non-existent.something"),
            ],
        ),
        RemoteGroupsConfig(
            name="group 1",
            on_query_fail="fail_all",
            remotes=[
                RemoteConfig(name="some name", address="http://non-existent.something"),
                RemoteConfig(name="some name", address="http://non-existent.something"),
            ],
        ),
    ],
)
def test_groups_invalid(sut):
    with pytest.raises(ConfigError):
        sut.validate()


def test_groups_valid():
    sut = RemoteGroupsConfig(
        name="group 1",
        on_query_fail="fail_all",
        remotes=[
            RemoteConfig(name="some name", address="http://non-existent.something"),
            RemoteConfig(name="some name 2", address="http://non-existent.something"),
        ],
    )
    assert sut.validate() is sut


def test_on_query_fail_default_values():
    assert RemoteGroupsConfig().fill_defaults().on_query_fail == STRATEGY_FAIL_ALL


# remote


@pytest.mark.parametrize(
    "sut",
    [
        RemoteConfig(address="http://something.com"),
        RemoteConfig(name="a name"),
        RemoteConfig(name="a name", address="aaaa"),
        RemoteConfig(name="a name", address="http://"),
    ],
)
def test_remote_invalid(sut):
    with pytest.raises(ConfigError):
        sut.validate()


@pytest.mark.parametrize("address", ["http://something", "https://something"])
def test_remote_valid(address):
    assert RemoteConfig(name="a name", address=address).validate().address == address


def test_remote_fill_defaults_keeps_values():
    sut = RemoteConfig(name="a", address="http://x", path_prefix="/p")
    assert sut.fill_defaults() == sut


# storages


def test_storages_validate():
    sut = StoragesConfig()
    with pytest.raises(ConfigError):
        sut.validate()

    sut.groups = [
        RemoteGroupsConfig(
            name="first!!!",
            on_query_fail="fail_all",
            remotes=[RemoteConfig(name="remote 1", address="http://non-existent.something")],
        )
    ]
    with pytest.raises(ConfigError):
        sut.validate()

    sut.merge = MergeStrategyConfig()
    with pytest.raises(ConfigError):
        sut.validate()

    sut.merge = MergeStrategyConfig(strategy="always_merge")
    assert sut.validate() is sut

    sut.groups.append(RemoteGroupsConfig())
    with pytest.raises(ConfigError):
        sut.validate()

    sut.groups = [
        RemoteGroupsConfig(name="first", on_query_fail="fail_all"),
        RemoteGroupsConfig(name="second", on_query_fail="fail_all"),
        RemoteGroupsConfig(name="first", on_query_fail="fail_all"),
    ]
    with pytest.raises(ConfigError):
        sut.validate()


def test_storages_duplicated_group_names():
    remotes = [RemoteConfig(name="r", address="http://x")]
    sut = StoragesConfig(
        merge=MergeStrategyConfig(strategy="keep_biggest"),
        groups=[
            RemoteGroupsConfig(name="g", on_query_fail="fail_all", remotes=remotes),
            RemoteGroupsConfig(name="g", on_query_fail="fail_all", remotes=remotes),
        ],
    )
    with pytest.raises(ConfigError, match="duplicated"):
        sut.validate()


def test_storages_fill_defaults():
    sut = StoragesConfig().fill_defaults()
    assert sut.merge.strategy == DEFAULT_MERGE_STRATEGY_TYPE

    sut = StoragesConfig(groups=[RemoteGroupsConfig(), RemoteGroupsConfig()]).fill_defaults()
    assert [g.on_query_fail for g in sut.groups] == [DEFAULT_ON_FAIL_STRATEGY] * 2


def test_time_window_validate():
    window = TimeWindowConfig(start="now-6h", end="now")
    assert window.validate() is window