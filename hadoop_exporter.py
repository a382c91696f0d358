#!/usr/bin/python3
# -*- coding: utf-8 -*-
# hadoop_exporter.py

import argparse
import enum
import html
import json
import logging
import math
import os
import signal
import socket
import sys
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal
from socketserver import ThreadingMixIn
from typing import Any, Callable, Dict, List, Optional, Tuple
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer

import requests
import yaml
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, start_http_server

from hadoop_roles import SOURCE_BEANS, SOURCE_OBJECT, BeanSpec, MetricLine, RoleSpec, SourceSpec, get_role, role_slug

VERSION = "1.0.0"

logging.basicConfig(
    stream=sys.stdout,
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/hadoop-exporter/config.yml"

POLICY_STRICT = "strict"
POLICY_LENIENT = "lenient"
LABEL_STYLE_LABEL = "label"
LABEL_STYLE_PREFIX = "prefix"

REFRESH_PUBLISHED = "published"
REFRESH_SKIPPED = "skipped"
REFRESH_FAILED = "failed"

CONTENT_TYPE_METRICS = "text/plain; version=0.0.4; charset=utf-8"


class HadoopExporterError(Exception):
    pass


class ConfigError(HadoopExporterError):
    pass


class CollectionError(HadoopExporterError):
    """Any failure that aborts a refresh cycle."""

    error_type = "collection"


class FetchError(CollectionError):
    error_type = "fetch"


class ParseError(CollectionError):
    error_type = "parse"


class FieldError(CollectionError):
    error_type = "field"


class NoOpMetric:
    def inc(self, *args: Any, **kwargs: Any) -> None:
        return

    def set(self, *args: Any, **kwargs: Any) -> None:
        return

    def observe(self, *args: Any, **kwargs: Any) -> None:
        return

    def labels(self, *args: Any, **kwargs: Any) -> "NoOpMetric":
        return self

    def info(self, *args: Any, **kwargs: Any) -> None:
        return


class InternalMetrics:
    """Self-monitoring series, kept in their own registry so they never leak into the snapshot."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        r = self.registry

        self.info = Info("hadoop_exporter", "Information about the Hadoop exporter", registry=r)

        self.refreshes_total = Counter(
            "hadoop_exporter_refreshes_total", "Refresh cycles that published a new snapshot.", registry=r
        )
        self.refresh_failures_total = Counter(
            "hadoop_exporter_refresh_failures_total",
            "Refresh cycles aborted, by error type.",
            ["error_type"],
            registry=r,
        )
        self.refreshes_skipped_total = Counter(
            "hadoop_exporter_refreshes_skipped_total",
            "Refresh requests dropped because another refresh was in flight.",
            registry=r,
        )
        self.refresh_duration_seconds = Gauge(
            "hadoop_exporter_refresh_duration_seconds", "Duration of the last refresh cycle in seconds.", registry=r
        )
        self.fetch_duration_seconds = Histogram(
            "hadoop_exporter_fetch_duration_seconds", "Upstream fetch duration in seconds.", ["source"], registry=r
        )
        self.partial_fields_total = Counter(
            "hadoop_exporter_partial_fields_total",
            "Fields defaulted to zero under the lenient extraction policy.",
            registry=r,
        )
        self.last_success_timestamp_seconds = Gauge(
            "hadoop_exporter_last_success_timestamp_seconds",
            "Unix timestamp of the last published snapshot.",
            registry=r,
        )


class NoOpMetrics:
    def __init__(self):
        noop = NoOpMetric()
        for k in [
            "info",
            "refreshes_total",
            "refresh_failures_total",
            "refreshes_skipped_total",
            "refresh_duration_seconds",
            "fetch_duration_seconds",
            "partial_fields_total",
            "last_success_timestamp_seconds",
        ]:
            setattr(self, k, noop)


@dataclass
class Config:
    role: str
    unix_sock: str
    metrics_path: str = "/metrics"
    jmx_url: str = ""
    rest_url: str = ""
    role_label: str = ""
    hostname: str = ""
    refresh_interval: float = 120.0
    fetch_retries: int = 1
    retry_delay: float = 5.0
    fetch_timeout: float = 30.0
    extraction_policy: str = POLICY_STRICT
    label_style: str = LABEL_STYLE_LABEL
    internal_metrics_port: int = 0
    log_level: str = "INFO"

    @property
    def role_spec(self) -> RoleSpec:
        return get_role(self.role)

    def url_for(self, source: SourceSpec) -> str:
        return getattr(self, source.url_setting)

    @classmethod
    def load(cls, config_path: str = None, role: str = None) -> "Config":
        explicit_path = config_path or os.getenv("CONFIG_PATH")
        final_path = explicit_path or DEFAULT_CONFIG_PATH
        logger.info("Loading configuration from: %s", final_path)

        config_data: Dict[str, Any] = {}
        try:
            with open(final_path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            if explicit_path:
                raise ConfigError(f"Configuration file not found: {e}") from e
            logger.info("No configuration file at %s; using defaults and environment.", final_path)
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing YAML config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")

        def _str(env: str, key: str, default: str = "") -> str:
            v = os.getenv(env)
            if v is None:
                v = config_data.get(key)
            return default if v is None else str(v).strip()

        def _num(env: str, key: str, default, cast):
            raw = os.getenv(env, config_data.get(key, default))
            try:
                return cast(raw)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{key} must be a number, got {raw!r}") from e

        role_key = role or _str("HADOOP_EXPORTER_ROLE", "role")
        if not role_key:
            raise ConfigError("A role is required (--role, HADOOP_EXPORTER_ROLE or 'role' in the config file).")
        try:
            spec = get_role(role_key)
        except KeyError as e:
            raise ConfigError(e.args[0]) from e

        cfg = cls(
            role=spec.key,
            unix_sock=_str("UNIX_SOCK", "unix_sock", spec.default_unix_sock),
            metrics_path=_str("METRICS_PATH", "metrics_path", "/metrics"),
            jmx_url=_str("JMX_URL", "jmx_url", spec.default_jmx_url),
            rest_url=_str("REST_URL", "rest_url", spec.default_rest_url),
            role_label=_str("ROLE_LABEL", "role_label", spec.role),
            hostname=_str("HOSTNAME_OVERRIDE", "hostname", socket.gethostname()),
            refresh_interval=_num("REFRESH_INTERVAL", "refresh_interval", 120, float),
            fetch_retries=_num("FETCH_RETRIES", "fetch_retries", 1, int),
            retry_delay=_num("RETRY_DELAY", "retry_delay", 5, float),
            fetch_timeout=_num("FETCH_TIMEOUT", "fetch_timeout", 30, float),
            extraction_policy=_str("EXTRACTION_POLICY", "extraction_policy", POLICY_STRICT).lower(),
            label_style=_str("LABEL_STYLE", "label_style", LABEL_STYLE_LABEL).lower(),
            internal_metrics_port=_num("INTERNAL_METRICS_PORT", "internal_metrics_port", 0, int),
            log_level=_str("LOG_LEVEL", "log_level", "INFO").upper(),
        )
        cfg.validate()
        return cfg

    def validate(self):
        try:
            spec = self.role_spec
        except KeyError as e:
            raise ConfigError(e.args[0]) from e

        if not self.unix_sock:
            raise ConfigError("unix_sock must not be empty")
        if not self.metrics_path.startswith("/"):
            raise ConfigError("metrics_path must start with '/'")
        if self.refresh_interval <= 0:
            raise ConfigError("refresh_interval must be > 0")
        if self.fetch_retries < 0:
            raise ConfigError("fetch_retries must be >= 0")
        if self.retry_delay < 0:
            raise ConfigError("retry_delay must be >= 0")
        if self.fetch_timeout <= 0:
            raise ConfigError("fetch_timeout must be > 0")
        if self.extraction_policy not in (POLICY_STRICT, POLICY_LENIENT):
            raise ConfigError(f"extraction_policy must be '{POLICY_STRICT}' or '{POLICY_LENIENT}'")
        if self.label_style not in (LABEL_STYLE_LABEL, LABEL_STYLE_PREFIX):
            raise ConfigError(f"label_style must be '{LABEL_STYLE_LABEL}' or '{LABEL_STYLE_PREFIX}'")
        if not 0 <= self.internal_metrics_port <= 65535:
            raise ConfigError("internal_metrics_port must be in range [0, 65535]")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigError(f"Unknown log_level {self.log_level!r}")
        if not self.role_label:
            raise ConfigError("role_label must not be empty")
        for setting in spec.url_settings():
            if not getattr(self, setting):
                raise ConfigError(f"{setting} is required for role {spec.key}")


class RemoteFetcher:
    """GET a URL with a bounded number of retries and an overall deadline.

    A 4xx/5xx response or a transport error is retried up to ``retries``
    times, ``retry_delay`` seconds apart. The whole call, retries included,
    never runs longer than ``timeout`` seconds. Setting ``cancel_event``
    aborts a pending retry wait.
    """

    def __init__(
        self,
        retries: int = 1,
        retry_delay: float = 5.0,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.retries = retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._session = session or requests.Session()
        self._cancel = cancel_event or threading.Event()

    def fetch(self, url: str) -> bytes:
        deadline = time.monotonic() + self.timeout
        attempt = 0
        while True:
            attempt += 1
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise FetchError(f"GET {url} exceeded the {self.timeout}s deadline")

            cause: Optional[BaseException] = None
            try:
                response = self._session.get(url, timeout=remaining)
            except requests.RequestException as e:
                failure = f"GET {url} failed: {e}"
                cause = e
            else:
                if response.status_code < 400:
                    return response.content
                failure = f"GET {url} returned HTTP {response.status_code}"

            if attempt > self.retries:
                raise FetchError(failure) from cause
            if deadline - time.monotonic() <= self.retry_delay:
                raise FetchError(f"{failure}; no time left before the deadline to retry") from cause

            logger.warning("%s; retrying in %ss (attempt %s of %s)", failure, self.retry_delay, attempt, self.retries + 1)
            if self._cancel.wait(self.retry_delay):
                raise FetchError(f"{failure}; retry cancelled") from cause


class FieldStatus(enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    WRONG_TYPE = "wrong type"


def lookup_field(bean: Any, path: str) -> Tuple[FieldStatus, float]:
    """Follow a dotted key path into a bean and classify what is found there."""
    node = bean
    for key in path.split("."):
        if not isinstance(node, dict):
            return FieldStatus.WRONG_TYPE, 0.0
        if key not in node:
            return FieldStatus.ABSENT, 0.0
        node = node[key]
    # bool is an int subclass, but true/false is not a measurement
    if isinstance(node, bool) or not isinstance(node, (int, float)):
        return FieldStatus.WRONG_TYPE, 0.0
    try:
        return FieldStatus.PRESENT, float(node)
    except OverflowError:
        # integers past the double range
        return FieldStatus.WRONG_TYPE, 0.0


@dataclass
class Extraction:
    records: Dict[str, Dict[str, float]] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)


class BeanExtractor:
    """Map the beans of one upstream document onto flat numeric records.

    Under the strict policy any absent or mistyped field raises FieldError.
    Under the lenient policy it becomes 0.0 and is listed in
    ``Extraction.missing``.
    """

    def __init__(self, policy: str = POLICY_STRICT, hostname: Optional[str] = None):
        self.policy = policy
        self.hostname = hostname or socket.gethostname()

    def selector(self, spec: BeanSpec) -> str:
        return spec.selector.replace("{hostname}", self.hostname)

    def extract(self, raw: bytes, source: SourceSpec) -> Extraction:
        document = self._parse(raw, source)
        if source.kind == SOURCE_BEANS:
            located = self._locate_beans(document, source)
        elif source.kind == SOURCE_OBJECT:
            located = self._locate_objects(document, source)
        else:
            raise ParseError(f"{source.name}: unsupported source kind {source.kind!r}")

        result = Extraction()
        for spec in source.beans:
            name = self.selector(spec)
            bean = located.get(name)
            if bean is None:
                self._reject(result, f"{source.name}: bean {name!r} not found")

            record: Dict[str, float] = {}
            for slot, path in spec.fields:
                if bean is None:
                    record[slot] = 0.0
                    continue
                status, value = lookup_field(bean, path)
                if status is not FieldStatus.PRESENT:
                    self._reject(result, f"{source.name}: {name} field {path!r} is {status.value}")
                record[slot] = value
            result.records[spec.record] = record
        return result

    def _reject(self, result: Extraction, problem: str):
        if self.policy == POLICY_STRICT:
            raise FieldError(problem)
        result.missing.append(problem)

    def _parse(self, raw: bytes, source: SourceSpec) -> Dict[str, Any]:
        try:
            document = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise ParseError(f"{source.name}: response is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise ParseError(f"{source.name}: expected a JSON object at the top level")
        return document

    def _locate_beans(self, document: Dict[str, Any], source: SourceSpec) -> Dict[str, Dict[str, Any]]:
        beans = document.get("beans")
        if not isinstance(beans, list):
            raise ParseError(f"{source.name}: document has no 'beans' list")

        wanted = {self.selector(spec) for spec in source.beans}
        found: Dict[str, Dict[str, Any]] = {}
        for bean in beans:
            if not isinstance(bean, dict):
                continue
            name = bean.get("name")
            if isinstance(name, str) and name in wanted:
                found[name] = bean
        return found

    def _locate_objects(self, document: Dict[str, Any], source: SourceSpec) -> Dict[str, Dict[str, Any]]:
        found: Dict[str, Dict[str, Any]] = {}
        for spec in source.beans:
            name = self.selector(spec)
            obj = document.get(name)
            if not isinstance(obj, dict):
                raise ParseError(f"{source.name}: document has no {name!r} object")
            found[name] = obj
        return found


def format_value(value: float) -> str:
    """Shortest round-trip digits, laid out like Go's %g (1e+06, 0.25, 1.23456789e+08)."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"

    sign, digits, exponent = Decimal(repr(float(value))).normalize().as_tuple()
    text = "".join(map(str, digits))
    point = len(text) + exponent
    exp10 = point - 1
    neg = "-" if sign else ""

    if -4 <= exp10 < 6:
        if point <= 0:
            return f"{neg}0.{'0' * -point}{text}"
        if point >= len(text):
            return f"{neg}{text}{'0' * (point - len(text))}"
        return f"{neg}{text[:point]}.{text[point:]}"

    mantissa = text[0] + (f".{text[1:]}" if len(text) > 1 else "")
    return f"{neg}{mantissa}e{'+' if exp10 >= 0 else '-'}{abs(exp10):02d}"


def escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class MetricRenderer:
    """Render records as exposition lines, in exactly the order the lines were given."""

    def __init__(self, lines: Tuple[MetricLine, ...], namespace: str, role: str, label_style: str = LABEL_STYLE_LABEL):
        if label_style == LABEL_STYLE_PREFIX:
            self._prefix = f"{namespace}_{role_slug(role)}_"
            self._extra_labels: Tuple[Tuple[str, str], ...] = ()
        else:
            self._prefix = f"{namespace}_"
            self._extra_labels = (("role", role),)
        self._lines = tuple(self._compile(line) for line in lines)

    def _compile(self, line: MetricLine) -> Tuple[str, str, str, str]:
        labels = line.labels + self._extra_labels
        head = self._prefix + line.name
        if labels:
            head += "{" + ",".join(f'{k}="{escape_label_value(v)}"' for k, v in labels) + "}"
        record, _, slot = line.source.partition(".")
        return head, record, slot, line.source

    def render(self, records: Dict[str, Dict[str, float]]) -> str:
        out = []
        for head, record, slot, source in self._lines:
            try:
                value = records[record][slot]
            except KeyError:
                raise FieldError(f"no value extracted for {source}") from None
            out.append(f"{head} {format_value(value)}\n")
        return "".join(out)


class SnapshotCache:
    """Last published snapshot plus the single-flight refresh guard.

    ``_lock`` is a plain exclusive lock (threading has no reader/writer
    lock), so concurrent readers do serialize on each other. Every holder,
    reader or refresh, keeps it only for a tuple read or swap, never across
    a collection, so a reader never waits on upstream I/O. The guard is a
    separate try-lock: a refresh requested while another runs is dropped,
    not queued.
    """

    def __init__(self, internal_metrics=None):
        self._lock = threading.Lock()
        self._guard = threading.Lock()
        self._snapshot: Tuple[str, Optional[float]] = ("", None)
        self._metrics = internal_metrics or NoOpMetrics()

    def read(self) -> str:
        with self._lock:
            return self._snapshot[0]

    @property
    def last_success(self) -> Optional[float]:
        with self._lock:
            return self._snapshot[1]

    @property
    def refreshing(self) -> bool:
        return self._guard.locked()

    def publish(self, text: str):
        now = time.time()
        with self._lock:
            self._snapshot = (text, now)
        self._metrics.last_success_timestamp_seconds.set(now)

    def refresh(self, collect: Callable[[], str]) -> str:
        if not self._guard.acquire(blocking=False):
            self._metrics.refreshes_skipped_total.inc()
            return REFRESH_SKIPPED

        start_time = time.time()
        try:
            text = collect()
        except CollectionError as e:
            logger.warning("Refresh aborted (%s error), keeping previous snapshot: %s", e.error_type, e)
            self._metrics.refresh_failures_total.labels(error_type=e.error_type).inc()
            return REFRESH_FAILED
        except Exception:
            logger.exception("Unexpected error during refresh, keeping previous snapshot")
            self._metrics.refresh_failures_total.labels(error_type="unexpected").inc()
            return REFRESH_FAILED
        else:
            self.publish(text)
            self._metrics.refreshes_total.inc()
            logger.debug("Published snapshot of %s bytes", len(text))
            return REFRESH_PUBLISHED
        finally:
            self._metrics.refresh_duration_seconds.set(time.time() - start_time)
            self._guard.release()


class RoleCollector:
    """One collection cycle for a role: fetch and extract every source, then render."""

    def __init__(
        self,
        role: RoleSpec,
        config: Config,
        fetcher: RemoteFetcher,
        extractor: BeanExtractor,
        renderer: MetricRenderer,
        internal_metrics=None,
    ):
        self.role = role
        self.config = config
        self.fetcher = fetcher
        self.extractor = extractor
        self.renderer = renderer
        self.internal_metrics = internal_metrics or NoOpMetrics()

    def collect(self) -> str:
        records: Dict[str, Dict[str, float]] = {}
        for source in self.role.sources:
            url = self.config.url_for(source)
            fetch_start = time.time()
            try:
                raw = self.fetcher.fetch(url)
            finally:
                self.internal_metrics.fetch_duration_seconds.labels(source=source.name).observe(
                    time.time() - fetch_start
                )

            extraction = self.extractor.extract(raw, source)
            if extraction.missing:
                logger.warning(
                    "%s: %s field(s) defaulted to 0: %s",
                    source.name,
                    len(extraction.missing),
                    "; ".join(extraction.missing),
                )
                self.internal_metrics.partial_fields_total.inc(len(extraction.missing))
            records.update(extraction.records)
        return self.renderer.render(records)


LANDING_PAGE = """<html>
<head><title>Hadoop {title} Exporter</title></head>
<body>
<h1>Hadoop {title} Exporter</h1>
<p><a href='{path}'>Metrics</a></p>
</body>
</html>"""


class ExporterApp:
    """WSGI app: the metrics path serves the cached snapshot, anything else the landing page."""

    def __init__(self, cache: SnapshotCache, metrics_path: str, title: str):
        self.cache = cache
        self.metrics_path = metrics_path
        self._landing = LANDING_PAGE.format(
            title=html.escape(title), path=html.escape(metrics_path, quote=True)
        ).encode("utf-8")

    def __call__(self, environ, start_response):
        path = environ.get("PATH_INFO", "")
        if path == self.metrics_path:
            body = self.cache.read().encode("utf-8")
            start_response("200 OK", [("Content-Type", CONTENT_TYPE_METRICS), ("Content-Length", str(len(body)))])
            return [body]
        start_response(
            "200 OK", [("Content-Type", "text/html; charset=utf-8"), ("Content-Length", str(len(self._landing)))]
        )
        return [self._landing]


class UnixRequestHandler(WSGIRequestHandler):
    def address_string(self):
        return "unix"

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


class UnixWSGIServer(ThreadingMixIn, WSGIServer):
    address_family = socket.AF_UNIX
    allow_reuse_address = False
    daemon_threads = True

    def server_bind(self):
        self.socket.bind(self.server_address)
        self.server_address = self.socket.getsockname()
        self.server_name = "localhost"
        self.server_port = 0
        self.setup_environ()

    def get_request(self):
        request, _ = self.socket.accept()
        return request, ("unix", 0)


def make_unix_server(path: str, app) -> UnixWSGIServer:
    """Bind a WSGI server to a Unix socket path, replacing any stale socket file."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    server = UnixWSGIServer(path, UnixRequestHandler)
    server.set_app(app)
    return server


class HadoopExporter:
    def __init__(self, config: Config, internal_metrics=None, fetcher: Optional[RemoteFetcher] = None):
        self.config = config
        self.role = config.role_spec
        self.internal_metrics = internal_metrics or NoOpMetrics()

        self._shutdown = threading.Event()
        self.cache = SnapshotCache(self.internal_metrics)
        self.fetcher = fetcher or RemoteFetcher(
            retries=config.fetch_retries,
            retry_delay=config.retry_delay,
            timeout=config.fetch_timeout,
            cancel_event=self._shutdown,
        )
        self.collector = RoleCollector(
            self.role,
            config,
            self.fetcher,
            BeanExtractor(config.extraction_policy, config.hostname),
            MetricRenderer(self.role.render, self.role.namespace, config.role_label, config.label_style),
            self.internal_metrics,
        )
        self.app = ExporterApp(self.cache, config.metrics_path, self.role.title)

        self._server: Optional[UnixWSGIServer] = None
        self._scheduler_thread: Optional[threading.Thread] = None

    def refresh(self) -> str:
        return self.cache.refresh(self.collector.collect)

    def _schedule(self):
        # Each tick gets its own worker so a slow cycle makes the next tick
        # hit the single-flight guard instead of delaying the timer.
        while not self._shutdown.wait(self.config.refresh_interval):
            threading.Thread(target=self.refresh, daemon=True, name="refresh").start()

    def start(self):
        logger.info("Hadoop %s exporter is starting...", self.role.role)

        if self.refresh() != REFRESH_PUBLISHED:
            logger.warning("Initial refresh did not publish a snapshot. Serving an empty body until one succeeds.")

        self._scheduler_thread = threading.Thread(target=self._schedule, daemon=True, name="refresh-scheduler")
        self._scheduler_thread.start()

        if self.config.internal_metrics_port and isinstance(self.internal_metrics, InternalMetrics):
            start_http_server(self.config.internal_metrics_port, registry=self.internal_metrics.registry)
            logger.info("Internal metrics server started on port %s", self.config.internal_metrics_port)

        self._server = make_unix_server(self.config.unix_sock, self.app)
        server_thread = threading.Thread(target=self._server.serve_forever, daemon=True, name="unix-server")
        server_thread.start()
        logger.info("Serving %s on unix socket %s", self.config.metrics_path, self.config.unix_sock)

        while not self._shutdown.is_set():
            self._shutdown.wait(self.config.refresh_interval)

        self._stop_server()

    def _stop_server(self):
        server, self._server = self._server, None
        if server is None:
            return
        try:
            server.shutdown()
            server.server_close()
        except Exception:
            logger.debug("Unix socket server shutdown failed", exc_info=True)
        try:
            os.unlink(self.config.unix_sock)
        except OSError:
            pass

    def shutdown(self):
        logger.info("Shutting down Hadoop exporter...")
        self._shutdown.set()

        t = self._scheduler_thread
        if t and t.is_alive():
            t.join(timeout=2.0)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Prometheus text exporter for Hadoop daemons")
    parser.add_argument("--config", "-c", help="Path to config.yml (or CONFIG_PATH env var).")
    parser.add_argument("--role", "-r", help="Role to monitor: datanode, namenode, resourcemanager, secondarynamenode.")
    parser.add_argument("--version", "-v", action="version", version=f"Hadoop exporter version {VERSION}")
    args = parser.parse_args(argv)

    exporter = None
    try:
        config = Config.load(args.config, role=args.role)
        logging.getLogger().setLevel(config.log_level)

        if config.internal_metrics_port:
            internal_metrics = InternalMetrics()
            internal_metrics.info.info(
                {
                    "version": VERSION,
                    "python_version": sys.version.split()[0],
                    "hostname": config.hostname,
                    "role": config.role_label,
                    "extraction_policy": config.extraction_policy,
                    "label_style": config.label_style,
                }
            )
        else:
            internal_metrics = NoOpMetrics()

        exporter = HadoopExporter(config, internal_metrics)

        def _signal_handler(signum, frame):
            logger.info("Received signal %s. Shutting down...", signum)
            if exporter:
                exporter.shutdown()

        signal.signal(signal.SIGINT, _signal_handler)
        signal.signal(signal.SIGTERM, _signal_handler)

        exporter.start()

    except ConfigError as e:
        logger.critical("Configuration error: %s", e)
        sys.exit(1)
    except Exception as e:
        logger.critical("Fatal error: %s", e, exc_info=True)
        if exporter:
            exporter.shutdown()
        sys.exit(1)


if __name__ == "__main__":
    main()
