"""Probe executor - performs one network check for one monitor.

A probe never raises. Whatever happens on the wire comes back as either
``Responded`` (something answered, whatever the status code) or ``Failed``
(bad configuration, or the transport gave up). Judging a response is the
assertion evaluator's job.
"""
import asyncio
import base64
import contextlib
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import urlsplit

import httpx

from ..config import settings
from ..errors import ConfigError, ProbeError
from ..schemas import AuthMethod, MonitorConfig, MonitorType

logger = logging.getLogger(__name__)

BASE_ACCEPT = "text/html,application/json"
MASKED = "***"


class FailureKind(str, Enum):
    CONFIG = ConfigError.category
    PROBE = ProbeError.category


@dataclass(frozen=True)
class Responded:
    """The target answered. ``code`` is None for protocols without status codes."""
    code: Optional[int]
    message: str
    elapsed_ms: int
    request_headers: Dict[str, str] = field(default_factory=dict)
    response_headers: Dict[str, str] = field(default_factory=dict)
    request_body: str = ""
    response_body: str = ""

    @property
    def content_type(self) -> Optional[str]:
        for key, value in self.response_headers.items():
            if key.lower() == "content-type":
                return value
        return None


@dataclass(frozen=True)
class Failed:
    """The check could not produce a response."""
    kind: FailureKind
    reason: str
    elapsed_ms: int = 0
    request_headers: Dict[str, str] = field(default_factory=dict)
    request_body: str = ""


ProbeOutcome = Union[Responded, Failed]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _split_host_port(monitor: MonitorConfig) -> Tuple[str, Optional[int]]:
    """Extract host and port from ``host``, ``host:port`` or ``scheme://host:port``."""
    target = monitor.url if "://" in monitor.url else f"//{monitor.url}"
    parts = urlsplit(target)
    try:
        port = parts.port
    except ValueError:
        raise ConfigError(f"invalid port in {monitor.url!r}", monitor_id=monitor.id)
    if not parts.hostname:
        raise ConfigError(f"no host in {monitor.url!r}", monitor_id=monitor.id)
    return parts.hostname, monitor.port or port


class Probe:
    """One protocol's way of checking a monitor."""

    async def probe(self, monitor: MonitorConfig) -> ProbeOutcome:
        raise NotImplementedError


class HttpProbe(Probe):
    """HTTP/HTTPS check via httpx."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        verify: Optional[bool] = None,
        max_body_snapshot: Optional[int] = None,
    ):
        self._transport = transport
        self.verify = settings.verify_tls if verify is None else verify
        self.max_body_snapshot = max_body_snapshot or settings.max_body_snapshot

    def build_headers(self, monitor: MonitorConfig) -> Dict[str, str]:
        """Merge base, content-type, auth and user headers, in that order."""
        headers = {"Accept": BASE_ACCEPT}
        if monitor.body:
            headers["Content-Type"] = "application/json"

        if monitor.auth_method == AuthMethod.BASIC:
            credentials = f"{monitor.basic_auth_user or ''}:{monitor.basic_auth_pass or ''}"
            headers["Authorization"] = "Basic " + base64.b64encode(credentials.encode()).decode()
        elif monitor.auth_method == AuthMethod.TOKEN:
            headers["Authorization"] = f"Bearer {monitor.bearer_token or ''}"

        if monitor.headers and monitor.headers.strip():
            try:
                extra = json.loads(monitor.headers)
            except json.JSONDecodeError:
                raise ConfigError("JSON headers invalid", monitor_id=monitor.id)
            if not isinstance(extra, dict):
                raise ConfigError("JSON headers invalid", monitor_id=monitor.id)
            headers.update({str(k): str(v) for k, v in extra.items()})
        return headers

    def parse_body(self, monitor: MonitorConfig) -> Optional[Any]:
        if not monitor.body:
            return None
        try:
            return json.loads(monitor.body)
        except json.JSONDecodeError:
            raise ConfigError("JSON body invalid", monitor_id=monitor.id)

    def _mask(self, headers: Dict[str, str]) -> Dict[str, str]:
        return {k: (MASKED if k.lower() == "authorization" else v) for k, v in headers.items()}

    def _body_snapshot(self, response: httpx.Response) -> str:
        try:
            snapshot = json.dumps(response.json())
        except ValueError:
            snapshot = json.dumps(response.text)
        return snapshot[: self.max_body_snapshot]

    async def probe(self, monitor: MonitorConfig) -> ProbeOutcome:
        request_body = monitor.body or ""
        try:
            headers = self.build_headers(monitor)
            payload = self.parse_body(monitor)
        except ConfigError as e:
            return Failed(FailureKind.CONFIG, e.message, request_body=request_body)

        sent_headers = self._mask(headers)
        content = json.dumps(payload).encode() if monitor.body else None

        start = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=monitor.timeout,
                follow_redirects=monitor.redirects > 0,
                max_redirects=monitor.redirects,
                verify=self.verify,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    monitor.method, monitor.url, headers=headers, content=content
                )
            elapsed = _elapsed_ms(start)
        except httpx.TimeoutException:
            return Failed(
                FailureKind.PROBE,
                f"Request timeout after {monitor.timeout}s",
                _elapsed_ms(start),
                sent_headers,
                request_body,
            )
        except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
            return Failed(FailureKind.CONFIG, f"Invalid URL: {e}", _elapsed_ms(start), sent_headers, request_body)
        except httpx.ConnectError as e:
            return Failed(FailureKind.PROBE, f"Connection error: {e}", _elapsed_ms(start), sent_headers, request_body)
        except httpx.HTTPError as e:
            return Failed(
                FailureKind.PROBE,
                f"{type(e).__name__}: {e}",
                _elapsed_ms(start),
                sent_headers,
                request_body,
            )

        logger.debug(f"HTTP {monitor.method} {monitor.url} -> {response.status_code} in {elapsed}ms")
        return Responded(
            code=response.status_code,
            message=f"{response.status_code} - {response.reason_phrase}",
            elapsed_ms=elapsed,
            request_headers=sent_headers,
            response_headers=dict(response.headers),
            request_body=request_body,
            response_body=self._body_snapshot(response),
        )


class TcpProbe(Probe):
    """Plain TCP connect check."""

    async def probe(self, monitor: MonitorConfig) -> ProbeOutcome:
        try:
            host, port = _split_host_port(monitor)
        except ConfigError as e:
            return Failed(FailureKind.CONFIG, e.message)
        if port is None:
            return Failed(FailureKind.CONFIG, "TCP monitor requires a port")

        start = time.monotonic()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=monitor.timeout
            )
        except asyncio.TimeoutError:
            return Failed(FailureKind.PROBE, f"Connection timeout after {monitor.timeout}s", _elapsed_ms(start))
        except OSError as e:
            return Failed(FailureKind.PROBE, f"Connection error: {e}", _elapsed_ms(start))

        elapsed = _elapsed_ms(start)
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return Responded(code=None, message=f"TCP connection to {host}:{port} established", elapsed_ms=elapsed)


class UnsupportedProbe(Probe):
    """Placeholder for protocols that are accepted but not checked yet."""

    async def probe(self, monitor: MonitorConfig) -> ProbeOutcome:
        return Failed(FailureKind.CONFIG, f"{monitor.type.value} probes are not supported yet")


class ProbeExecutor:
    """Dispatches a monitor to the probe for its type."""

    def __init__(self, probes: Optional[Dict[MonitorType, Probe]] = None):
        if probes is None:
            probes = {
                MonitorType.HTTP: HttpProbe(),
                MonitorType.TCP: TcpProbe(),
                MonitorType.MONGODB: UnsupportedProbe(),
                MonitorType.REDIS: UnsupportedProbe(),
            }
        self._probes = dict(probes)

    def register(self, monitor_type: MonitorType, probe: Probe):
        self._probes[monitor_type] = probe

    async def execute(self, monitor: MonitorConfig) -> ProbeOutcome:
        probe = self._probes.get(monitor.type)
        if probe is None:
            return Failed(FailureKind.CONFIG, f"Unknown monitor type: {monitor.type.value}")
        return await probe.probe(monitor)


# Global instance
probe_executor = ProbeExecutor()
