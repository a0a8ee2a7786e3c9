"""Server configuration from defaults, a JSON or YAML file, and command-line flags."""

from __future__ import annotations

import argparse
import json
import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Optional

import yaml

from .durations import parse_duration

log = logging.getLogger(__name__)

SLOOP_CONFIG_ENV_VAR = "SLOOP_CONFIG"

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MAX = (1 << 64) - 1


class ConfigError(ValueError):
    """The configuration could not be loaded or is not valid."""


@dataclass
class SloopConfig:
    """All settings of the server; every field starts at its zero value."""

    config_file: str = ""
    left_bar_links: Optional[list[dict[str, Any]]] = None
    resource_links: Optional[list[dict[str, Any]]] = None
    disable_kube_watcher: bool = False
    kube_watch_resync_interval: timedelta = field(default_factory=timedelta)
    web_files_path: str = ""
    bind_address: str = ""
    port: int = 0
    store_root: str = ""
    max_lookback: timedelta = field(default_factory=timedelta)
    max_disk_mb: int = 0
    debug_playback_file: str = ""
    debug_record_file: str = ""
    deletion_batch_size: int = 0
    use_mock_badger: bool = False
    disable_store_manager: bool = False
    cleanup_frequency: timedelta = field(default_factory=timedelta)
    keep_minor_node_updates: bool = False
    default_namespace: str = ""
    default_kind: str = ""
    default_lookback: str = ""
    use_kube_context: str = ""
    display_context: str = ""
    api_server_host: str = ""
    watch_crds: bool = False
    crd_refresh_interval: timedelta = field(default_factory=timedelta)
    threshold_for_gc: float = 0.0
    restore_database_file: str = ""
    badger_discard_ratio: float = 0.0
    badger_vlog_gc_freq: timedelta = field(default_factory=timedelta)
    badger_max_table_size: int = 0
    badger_level_one_size: int = 0
    badger_lev_size_multiplier: int = 0
    badger_keep_l0_in_memory: bool = False
    badger_vlog_file_size: int = 0
    badger_vlog_max_entries: int = 0
    badger_use_lsm_only_options: bool = False
    badger_enable_event_logging: bool = False
    badger_num_of_compactors: int = 0
    badger_num_l0_tables: int = 0
    badger_num_l0_tables_stall: int = 0
    badger_sync_writes: bool = False
    badger_vlog_file_io_mapping: bool = False
    badger_vlog_truncate: bool = False
    enable_delete_keys: bool = False

    def to_yaml(self) -> str:
        """Render the settings as YAML, keyed by their file names, sorted."""
        data = {spec.key: _encode(spec, getattr(self, spec.attr)) for spec in _FIELDS}
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=True)

    def validate(self) -> None:
        """Raise ``ConfigError`` if a setting is out of bounds."""
        if self.max_lookback <= timedelta(0):
            raise ConfigError("SloopConfig value MaxLookback can not be <= 0")
        if self.default_lookback == "":
            raise ConfigError("DefaultLookback can not be empty string")
        try:
            parse_duration(self.default_lookback)
        except ValueError as err:
            raise ConfigError(
                f"DefaultLookback is an invalid duration: {self.default_lookback}: {err}"
            ) from err
        if self.cleanup_frequency < timedelta(minutes=15):
            raise ConfigError(
                "CleanupFrequency can not be less than 15 minutes.  Badger is lazy about freeing "
                "space on disk so we need to give it time to avoid over-correction"
            )


@dataclass(frozen=True)
class _Field:
    attr: str
    key: str
    kind: str
    flag: Optional[str] = None
    help: str = ""


_FIELDS = (
    _Field("config_file", "ConfigFile", "str", "config", "Path to a yaml or json config file"),
    _Field("left_bar_links", "leftBarLinks", "links"),
    _Field("resource_links", "resourceLinks", "links"),
    _Field("disable_kube_watcher", "disableKubeWatch", "bool", "disable-kube-watch",
           "Turn off kubernetes watch"),
    _Field("kube_watch_resync_interval", "kubeWatchResyncInterval", "duration",
           "kube-watch-resync-interval", "OPTIONAL: Kubernetes watch resync interval"),
    _Field("web_files_path", "webfilesPath", "str", "web-files-path", "Path to web files"),
    _Field("bind_address", "bindAddress", "str", "bind-address", "Web server bind ip address."),
    _Field("port", "port", "int", "port", "Web server port"),
    _Field("store_root", "storeRoot", "str", "store-root", "Path to store history data"),
    _Field("max_lookback", "maxLookBack", "duration", "max-look-back", "Max history data to keep"),
    _Field("max_disk_mb", "maxDiskMb", "int", "max-disk-mb", "Max disk storage in MB"),
    _Field("debug_playback_file", "debugPlaybackFile", "str", "playback-file",
           "Read watch data from a playback file"),
    _Field("debug_record_file", "debugRecordFile", "str", "record-file",
           "Record watch data to a playback file"),
    _Field("deletion_batch_size", "deletionBatchSize", "int", "deletion-batch-size",
           "Size of batch for deletion"),
    _Field("use_mock_badger", "mockBadger", "bool", "use-mock-badger",
           "Use a fake in-memory mock of badger"),
    _Field("disable_store_manager", "disableStoreManager", "bool", "disable-store-manager",
           "Turn off store manager which is to clean up database"),
    _Field("cleanup_frequency", "cleanupFrequency", "duration", "cleanup-frequency",
           "Frequency between subsequent runs for the database cleanup"),
    _Field("keep_minor_node_updates", "keepMinorNodeUpdates", "bool", "keep-minor-node-updates",
           "Keep all node updates even if change is only condition timestamps"),
    _Field("default_namespace", "defaultNamespace", "str", "default-namespace",
           "Default UX filter namespace"),
    _Field("default_kind", "defaultKind", "str", "default-kind", "Default UX filter kind"),
    _Field("default_lookback", "defaultLookback", "str", "default-lookback",
           "Default UX filter lookback"),
    _Field("use_kube_context", "context", "str", "context", "Use a specific kubernetes context"),
    _Field("display_context", "displayContext", "str", "display-context",
           "Override the displayed context, which is empty when running inside the cluster"),
    _Field("api_server_host", "apiServerHost", "str", "apiserver-host",
           "Kubernetes API server endpoint"),
    _Field("watch_crds", "watchCrds", "bool", "watch-crds", "Watch for activity for CRDs"),
    _Field("crd_refresh_interval", "crdRefreshInterval", "duration", "crd-refresh-interval",
           "Frequency between CRD Informer refresh"),
    _Field("threshold_for_gc", "threshold for GC", "float", "gc-threshold",
           "Threshold for GC to start garbage collecting"),
    _Field("restore_database_file", "restoreDatabaseFile", "str", "restore-database-file",
           "Restore database from backup file into current context."),
    _Field("badger_discard_ratio", "badgerDiscardRatio", "float", "badger-discard-ratio",
           "Discard ratio the value log GC uses to decide whether to compact a vlog file"),
    _Field("badger_vlog_gc_freq", "badgerVLogGCFreq", "duration", "badger-vlog-gc-freq",
           "Frequency of running badger's ValueLogGC"),
    _Field("badger_max_table_size", "badgerMaxTableSize", "int", "badger-max-table-size",
           "Max LSM table size in bytes.  0 = use badger default"),
    _Field("badger_level_one_size", "badgerLevelOneSize", "int", "badger-level-one-size",
           "The maximum total size for Level 1.  0 = use badger default"),
    _Field("badger_lev_size_multiplier", "badgerLevSizeMultiplier", "int",
           "badger-level-size-multiplier",
           "The ratio between the maximum sizes of contiguous levels in the LSM.  0 = use badger default"),
    _Field("badger_keep_l0_in_memory", "badgerKeepL0InMemory", "bool", "badger-keep-l0-in-memory",
           "Keeps all level 0 tables in memory for faster writes and compactions"),
    _Field("badger_vlog_file_size", "badgerVLogFileSize", "int", "badger-vlog-file-size",
           "Max size in bytes per value log file. 0 = use badger default"),
    _Field("badger_vlog_max_entries", "badgerVLogMaxEntries", "uint", "badger-vlog-max-entries",
           "Max number of entries per value log files. 0 = use badger default"),
    _Field("badger_use_lsm_only_options", "badgerUseLSMOnlyOptions", "bool",
           "badger-use-lsm-only-options",
           "Sets a higher valueThreshold so values are collocated with the LSM tree"),
    _Field("badger_enable_event_logging", "badgerEnableEventLogging", "bool",
           "badger-enable-event-logging", "Turns on badger event logging"),
    _Field("badger_num_of_compactors", "badgerNumOfCompactors", "int",
           "badger-number-of-compactors", "Number of compactors for badger"),
    _Field("badger_num_l0_tables", "badgerNumLevelZeroTables", "int",
           "badger-number-of-level-zero-tables", "Number of level zero tables for badger"),
    _Field("badger_num_l0_tables_stall", "badgerNumLevelZeroTablesStall", "int",
           "badger-number-of-zero-tables-stall",
           "Number of Level 0 tables that once reached causes the DB to stall until compaction succeeds"),
    _Field("badger_sync_writes", "badgerSyncWrites", "bool", "badger-sync-writes",
           "Sync Writes ensures writes are synced to disk if set to true"),
    _Field("badger_vlog_file_io_mapping", "badgerVLogFileIOMapping", "bool",
           "badger-vlog-fileIO-mapping",
           "Load value log files with file IO instead of memory mapping"),
    _Field("badger_vlog_truncate", "badgerVLogTruncate", "bool", "badger-vlog-truncate",
           "Truncate value log if badger db offset is different from badger db size"),
    _Field("enable_delete_keys", "enableDeleteKeys", "bool", "enable-delete-keys",
           "Use delete prefixes instead of dropPrefix for GC"),
)

_BY_KEY = {spec.key: spec for spec in _FIELDS}
_BY_FOLDED_KEY = {spec.key.casefold(): spec for spec in _FIELDS}

_GLOG_FLAGS = (
    ("logtostderr", "bool", False, "log to standard error instead of files"),
    ("alsologtostderr", "bool", False, "log to standard error as well as files"),
    ("v", "int", 0, "log level for V logs"),
    ("stderrthreshold", "int", 0, "logs at or above this threshold go to stderr"),
    ("vmodule", "str", "", "comma-separated list of pattern=N settings for file-filtered logging"),
    ("log_backtrace_at", "str", "", "when logging hits line file:N, emit a stack trace"),
)


def default_config() -> SloopConfig:
    """The settings used when neither a file nor a flag says otherwise."""
    return SloopConfig(
        kube_watch_resync_interval=timedelta(minutes=30),
        web_files_path="./pkg/sloop/webserver/webfiles",
        port=8080,
        store_root="./data",
        max_lookback=timedelta(days=14),
        max_disk_mb=32 * 1024,
        deletion_batch_size=1000,
        cleanup_frequency=timedelta(minutes=30),
        default_namespace="default",
        default_kind="_all",
        default_lookback="1h",
        watch_crds=True,
        crd_refresh_interval=timedelta(minutes=5),
        threshold_for_gc=0.8,
        badger_discard_ratio=0.99,
        badger_vlog_gc_freq=timedelta(minutes=1),
        badger_keep_l0_in_memory=True,
        badger_vlog_max_entries=200000,
        badger_use_lsm_only_options=True,
        badger_sync_writes=True,
        badger_vlog_truncate=True,
    )


def _nanos_to_timedelta(nanos: int) -> timedelta:
    micros = abs(nanos) // 1000
    return timedelta(microseconds=-micros if nanos < 0 else micros)


def _timedelta_to_nanos(span: timedelta) -> int:
    return ((span.days * 86400 + span.seconds) * 1_000_000 + span.microseconds) * 1000


def _encode(spec: _Field, value: Any) -> Any:
    if spec.kind == "duration":
        return _timedelta_to_nanos(value)
    if spec.kind == "links":
        return None if value is None else [dict(item) for item in value]
    return value


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _decode(spec: _Field, value: Any) -> Any:
    def wrong() -> ConfigError:
        return ConfigError(f"cannot unmarshal {value!r} into field {spec.key} of type {spec.kind}")

    if spec.kind == "str":
        if not isinstance(value, str):
            raise wrong()
        return value
    if spec.kind == "bool":
        if not isinstance(value, bool):
            raise wrong()
        return value
    if spec.kind == "int":
        if not _is_int(value) or not _INT64_MIN <= value <= _INT64_MAX:
            raise wrong()
        return value
    if spec.kind == "uint":
        if not _is_int(value) or not 0 <= value <= _UINT64_MAX:
            raise wrong()
        return value
    if spec.kind == "float":
        if not (_is_int(value) or isinstance(value, float)):
            raise wrong()
        return float(value)
    if spec.kind == "duration":
        if not _is_int(value) or not _INT64_MIN <= value <= _INT64_MAX:
            raise wrong()
        return _nanos_to_timedelta(value)
    if not isinstance(value, list) or not all(isinstance(item, Mapping) for item in value):
        raise wrong()
    return [dict(item) for item in value]


def _apply_document(config: SloopConfig, document: Any) -> None:
    if document is None:
        return
    if not isinstance(document, Mapping):
        raise ConfigError("config document must be an object")
    for raw_key, value in document.items():
        key = str(raw_key)
        spec = _BY_KEY.get(key) or _BY_FOLDED_KEY.get(key.casefold())
        if spec is None or value is None:
            continue
        setattr(config, spec.attr, _decode(spec, value))


def load_from_file(filename: str, config: Optional[SloopConfig]) -> SloopConfig:
    """Overlay the settings in a ``.json`` or ``.yaml`` file onto ``config``.

    With no ``config`` a zero-valued one is filled. Raises ``ConfigError`` if
    the file cannot be read, has another type, or does not decode.
    """
    try:
        with open(filename, "rb") as handle:
            content = handle.read()
    except OSError as err:
        raise ConfigError(f"failed to read {filename}. {err}") from err

    if ".yaml" in filename:
        loader: Callable[[bytes], Any] = yaml.safe_load
        errors: tuple[type[Exception], ...] = (yaml.YAMLError,)
    elif ".json" in filename:
        loader = json.loads
        errors = (ValueError,)
    else:
        raise ConfigError(f"incorrect file format {filename}. Use json or yaml file type. ")

    target = config if config is not None else SloopConfig()
    try:
        document = loader(content)
        _apply_document(target, document)
    except ConfigError as err:
        raise ConfigError(f"failed to unmarshal {filename}. {err}") from err
    except errors as err:
        raise ConfigError(f"failed to unmarshal {filename}. {err}") from err
    return target


_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _parse_int(text: str) -> int:
    value = int(text, 0)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text}")
    return value


def _parse_uint(text: str) -> int:
    value = int(text, 0)
    if not 0 <= value <= _UINT64_MAX:
        raise ValueError(f"value out of range: {text}")
    return value


_FLAG_TYPES: dict[str, Callable[[str], Any]] = {
    "int": _parse_int,
    "uint": _parse_uint,
    "float": float,
    "duration": parse_duration,
}


class _FlagParser(argparse.ArgumentParser):
    raise_errors = False

    def error(self, message: str):  # type: ignore[override]
        if self.raise_errors:
            raise ConfigError(message)
        super().error(message)


def _add_flag(parser: argparse.ArgumentParser, name: str, dest: str, kind: str,
              default: Any, help_text: str) -> None:
    option_strings = [f"-{name}", f"--{name}"]
    if kind == "bool":
        parser.add_argument(*option_strings, dest=dest, nargs="?", const=True,
                            type=_parse_bool, default=default, help=help_text)
    elif kind == "str":
        parser.add_argument(*option_strings, dest=dest, default=default, help=help_text)
    else:
        parser.add_argument(*option_strings, dest=dest, type=_FLAG_TYPES[kind],
                            default=default, help=help_text)


def build_parser(config: SloopConfig) -> argparse.ArgumentParser:
    """A flag parser whose defaults are the values currently in ``config``."""
    parser = _FlagParser(prog="sloop", allow_abbrev=False)
    for spec in _FIELDS:
        if spec.flag is not None:
            _add_flag(parser, spec.flag, spec.attr, spec.kind, getattr(config, spec.attr), spec.help)
    for name, kind, default, help_text in _GLOG_FLAGS:
        _add_flag(parser, name, f"logging_{name}", kind, default, help_text)
    parser.add_argument("args", nargs="*", help=argparse.SUPPRESS)
    return parser


def _config_flag(argv: Sequence[str]) -> str:
    parser = build_parser(SloopConfig())
    parser.raise_errors = True  # type: ignore[attr-defined]
    try:
        namespace = parser.parse_args(list(argv))
    except ConfigError as err:
        print(f"Failed to pre-parse flags looking for config file: {err}")
        return ""
    return namespace.config_file


def config_file_path(argv: Optional[Sequence[str]] = None,
                     environ: Optional[Mapping[str, str]] = None) -> str:
    """The config file named by ``-config``, else by the environment, else empty."""
    argv = os.sys.argv[1:] if argv is None else argv
    environ = os.environ if environ is None else environ
    from_flag = _config_flag(argv)
    if from_flag:
        log.info("Config flag: %s", from_flag)
        return from_flag
    from_env = environ.get(SLOOP_CONFIG_ENV_VAR, "")
    if from_env:
        log.info("Config env: %s", from_env)
        return from_env
    log.info("Default config set")
    return ""


def init(argv: Optional[Sequence[str]] = None) -> SloopConfig:
    """Build the configuration: defaults, then the config file, then flags."""
    argv = os.sys.argv[1:] if argv is None else list(argv)
    config = default_config()
    filename = config_file_path(argv, os.environ)
    if filename:
        config = load_from_file(filename, config)
    namespace = build_parser(config).parse_args(argv)
    for spec in _FIELDS:
        if spec.flag is not None:
            setattr(config, spec.attr, getattr(namespace, spec.attr))
    config.config_file = filename
    return config