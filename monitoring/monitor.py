"""
============================================================================
UPTIMEKIT - CHECK EXECUTION
============================================================================
Protocol probes and the executor that turns one probe into one heartbeat.

Architecture
------------
CheckExecutor             ← runs one check for one monitor
├── HTTPChecker           ← GET via httpx, up on 2xx
├── ICMPChecker           ← one echo request via the system ping
├── DNSChecker            ← A record lookup via dnspython
├── HeartbeatRepository   ← append (failures logged and dropped)
├── _handle_transition()  ← monitor_down / monitor_up events
└── SSLChecker            ← periodic certificate inspection for https,
                            run as its own task beside the checks

Every probe returns a ProbeOk or a ProbeErr; nothing a probe does can
raise out of the executor.
============================================================================
"""

import asyncio
import hashlib
import re
import ssl
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import urlparse

import httpx
import dns.asyncresolver
import dns.exception
import dns.resolver

from config.constants import (
    CertificateState,
    HeartbeatStatus,
    MonitorType,
    NotificationEvent,
)
from config.settings import Settings
from database.manager import HeartbeatRepository, SslCertificateRepository
from database.models import Heartbeat
from exceptions import (
    DatabaseException,
    PersistenceWriteError,
    ProbeConnectionError,
    ProbeError,
    ProbeProtocolError,
    ProbeTimeout,
)
from utils.helpers import Stopwatch, StringHelper, TimeHelper
from utils.logger import get_logger


logger = get_logger("Executor")


# ============================================================================
# MONITOR SNAPSHOT
# ============================================================================

class MonitorSnapshot:
    """
    The part of a registry row a check task runs with.

    ``target``, ``type`` and ``interval`` form the drift key compared on
    every reconciliation tick; ``name`` and ``webhook_url`` are carried for
    notifications only.
    """
    __slots__ = ("monitor_id", "type", "target", "interval", "name", "webhook_url")

    def __init__(
        self,
        monitor_id: int,
        type: str,
        target: str,
        interval: int,
        name: Optional[str] = None,
        webhook_url: Optional[str] = None,
    ):
        self.monitor_id = monitor_id
        self.type = type
        self.target = target
        self.interval = interval
        self.name = name
        self.webhook_url = webhook_url

    @classmethod
    def from_monitor(cls, monitor: Any) -> "MonitorSnapshot":
        return cls(
            monitor_id=monitor.id,
            type=monitor.type,
            target=monitor.url,
            interval=monitor.interval,
            name=monitor.name,
            webhook_url=monitor.webhook_url,
        )

    @property
    def drift_key(self):
        return (self.target, self.type, self.interval)

    @property
    def display_name(self) -> str:
        return StringHelper.display_name(self.name, self.target)

    def __repr__(self):
        return (
            f"<MonitorSnapshot(id={self.monitor_id}, type={self.type}, "
            f"target={self.target}, interval={self.interval})>"
        )


# ============================================================================
# PROBE RESULTS
# ============================================================================

class ProbeOk:
    """Target answered successfully."""
    __slots__ = ("latency_ms",)
    ok = True

    def __init__(self, latency_ms: int):
        self.latency_ms = max(0, int(latency_ms))

    def __repr__(self):
        return f"ProbeOk(latency_ms={self.latency_ms})"


class ProbeErr:
    """Target failed; ``error`` classifies the failure."""
    __slots__ = ("latency_ms", "reason", "error")
    ok = False

    def __init__(self, latency_ms: int, reason: str, error: Optional[ProbeError] = None):
        self.latency_ms = max(0, int(latency_ms))
        self.reason = reason
        self.error = error

    def __repr__(self):
        kind = type(self.error).__name__ if self.error else "None"
        return f"ProbeErr(latency_ms={self.latency_ms}, error={kind}, reason={self.reason!r})"


ProbeResult = Union[ProbeOk, ProbeErr]


def result_to_status(result: ProbeResult) -> HeartbeatStatus:
    return HeartbeatStatus.UP if result.ok else HeartbeatStatus.DOWN


# ============================================================================
# HTTP CHECKER
# ============================================================================

class HTTPChecker:
    """
    Issues a single GET with httpx.

    Redirects are followed and TLS is verified. Any 2xx final response is
    up. There is no retry: a failure is simply the next down heartbeat.
    """
    monitor_type = MonitorType.HTTP

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.timeout = settings.monitoring.http_timeout
        self.user_agent = settings.monitoring.user_agent
        self._transport = transport

    async def probe(self, target: str) -> ProbeResult:
        stopwatch = Stopwatch()
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                verify=True,
                headers={"User-Agent": self.user_agent},
                transport=self._transport,
            ) as client:
                response = await client.get(target)

        except httpx.TimeoutException as e:
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"Timed out after {self.timeout}s",
                ProbeTimeout(str(e) or "HTTP request timed out", timeout=self.timeout,
                             target=target, monitor_type="http", cause=e),
            )
        except httpx.TransportError as e:
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"Connection error: {StringHelper.truncate(str(e), 200)}",
                ProbeConnectionError(StringHelper.truncate(str(e), 200) or "Connection failed",
                                     target=target, monitor_type="http", cause=e),
            )
        except httpx.HTTPError as e:
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"HTTP error: {StringHelper.truncate(str(e), 200)}",
                ProbeProtocolError(StringHelper.truncate(str(e), 200) or "HTTP error",
                                   target=target, monitor_type="http", cause=e),
            )

        elapsed = stopwatch.elapsed_ms
        if 200 <= response.status_code < 300:
            logger.debug(f"[HTTP] {target} → {response.status_code} in {elapsed}ms")
            return ProbeOk(elapsed)

        logger.debug(f"[HTTP] {target} → status {response.status_code}")
        return ProbeErr(
            elapsed,
            f"HTTP status {response.status_code}",
            ProbeProtocolError(f"Unexpected status {response.status_code}",
                               status_code=response.status_code,
                               target=target, monitor_type="http"),
        )


# ============================================================================
# ICMP CHECKER
# ============================================================================

PING_RTT_PATTERN = re.compile(r"time[=<]\s*([\d.]+)\s*ms", re.IGNORECASE)


def parse_ping_rtt(output: str) -> int:
    """
    Round-trip time reported by ping, in whole milliseconds.
    Returns 0 when the output carries no time.
    """
    match = PING_RTT_PATTERN.search(output or "")
    if not match:
        return 0
    try:
        return int(round(float(match.group(1))))
    except ValueError:
        return 0


class ICMPChecker:
    """
    Sends one ICMP echo request by running the system ``ping``.

    Raw ICMP sockets need elevated privileges; the setuid ping binary
    does not. Latency is the RTT ping reports, 0 if it reports none.
    """
    monitor_type = MonitorType.ICMP

    def __init__(self, settings: Settings):
        self.settings = settings
        self.timeout = settings.monitoring.icmp_timeout
        self.command = settings.monitoring.ping_command

    def build_command(self, host: str):
        return [self.command, "-c", "1", "-W", str(self.timeout), host]

    async def probe(self, target: str) -> ProbeResult:
        stopwatch = Stopwatch()
        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_command(target),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"Cannot run {self.command}: {e}",
                ProbeConnectionError(f"Cannot run {self.command}",
                                     target=target, monitor_type="icmp", cause=e),
            )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout + 1)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"No reply within {self.timeout}s",
                ProbeTimeout(timeout=self.timeout, target=target, monitor_type="icmp"),
            )

        output = stdout.decode(errors="replace")
        if process.returncode == 0:
            rtt = parse_ping_rtt(output)
            logger.debug(f"[ICMP] {target} → reply in {rtt}ms")
            return ProbeOk(rtt)

        elapsed = stopwatch.elapsed_ms
        detail = (stderr.decode(errors="replace") or output).strip()[:200]

        # ping exits 1 when no reply arrived, 2 on other errors
        if process.returncode == 1 and "unreachable" not in output.lower():
            return ProbeErr(
                elapsed,
                f"No reply within {self.timeout}s",
                ProbeTimeout(timeout=self.timeout, target=target, monitor_type="icmp"),
            )

        return ProbeErr(
            elapsed,
            detail or f"ping exited with {process.returncode}",
            ProbeProtocolError(detail or "Host unreachable", target=target, monitor_type="icmp"),
        )


# ============================================================================
# DNS CHECKER
# ============================================================================

class DNSChecker:
    """
    Resolves the target's A record with the asyncio resolver.

    The lifetime is the resolver's own default unless
    MONITOR_DNS_TIMEOUT is set.
    """
    monitor_type = MonitorType.DNS

    def __init__(self, settings: Settings):
        self.settings = settings
        self.lifetime = settings.monitoring.dns_timeout

    async def probe(self, target: str) -> ProbeResult:
        stopwatch = Stopwatch()
        resolver = dns.asyncresolver.Resolver()
        if self.lifetime:
            resolver.lifetime = self.lifetime

        try:
            answers = await resolver.resolve(target, "A")
        except dns.exception.Timeout as e:
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"DNS resolution for {target} timed out",
                ProbeTimeout(str(e) or "DNS timeout", timeout=self.lifetime,
                             target=target, monitor_type="dns", cause=e),
            )
        except dns.resolver.NXDOMAIN as e:
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"Domain {target} does not exist (NXDOMAIN)",
                ProbeProtocolError("NXDOMAIN", target=target, monitor_type="dns", cause=e),
            )
        except dns.resolver.NoAnswer as e:
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"No A record for {target}",
                ProbeProtocolError("No answer", target=target, monitor_type="dns", cause=e),
            )
        except dns.resolver.NoNameservers as e:
            return ProbeErr(
                stopwatch.elapsed_ms,
                "No nameserver could answer",
                ProbeConnectionError("No nameservers", target=target, monitor_type="dns", cause=e),
            )
        except dns.exception.DNSException as e:
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"DNS error: {StringHelper.truncate(str(e), 200)}",
                ProbeProtocolError(StringHelper.truncate(str(e), 200) or "DNS error", target=target,
                                   monitor_type="dns", cause=e),
            )

        elapsed = stopwatch.elapsed_ms
        logger.debug(f"[DNS] {target} → {answers[0] if len(answers) else '-'} in {elapsed}ms")
        return ProbeOk(elapsed)


# ============================================================================
# SSL CHECKER
# ============================================================================

X509_V_ERR_CERT_HAS_EXPIRED = 10


def certificate_state(days_remaining: Optional[int], warning_days: int) -> Optional[CertificateState]:
    """State of a certificate from its remaining days; None when unknown."""
    if days_remaining is None:
        return None
    if days_remaining < 0:
        return CertificateState.EXPIRED
    if days_remaining <= warning_days:
        return CertificateState.EXPIRING
    return CertificateState.VALID


def _name_field(name: Any, key: str) -> Optional[str]:
    for rdn in name or ():
        for field, value in rdn:
            if field == key:
                return value
    return None


class CertificateInfo:
    """Parsed peer certificate."""
    __slots__ = (
        "issuer", "subject", "valid_from", "valid_to",
        "days_remaining", "serial_number", "fingerprint",
    )

    def __init__(
        self,
        issuer: Optional[str] = None,
        subject: Optional[str] = None,
        valid_from: Optional[datetime] = None,
        valid_to: Optional[datetime] = None,
        days_remaining: Optional[int] = None,
        serial_number: Optional[str] = None,
        fingerprint: Optional[str] = None,
    ):
        self.issuer = issuer
        self.subject = subject
        self.valid_from = valid_from
        self.valid_to = valid_to
        self.days_remaining = days_remaining
        self.serial_number = serial_number
        self.fingerprint = fingerprint

    @staticmethod
    def fingerprint_of(der: Optional[bytes]) -> Optional[str]:
        if not der:
            return None
        digest = hashlib.sha256(der).hexdigest().upper()
        return ":".join(digest[i:i + 2] for i in range(0, len(digest), 2))

    @classmethod
    def from_peer(cls, cert: Dict[str, Any], der: Optional[bytes],
                  now: Optional[datetime] = None) -> "CertificateInfo":
        now = now or TimeHelper.get_utc_now()

        def parse_time(key: str) -> Optional[datetime]:
            value = cert.get(key)
            if not value:
                return None
            return datetime.fromtimestamp(ssl.cert_time_to_seconds(value), tz=timezone.utc)

        valid_to = parse_time("notAfter")
        issuer = _name_field(cert.get("issuer"), "organizationName") or \
            _name_field(cert.get("issuer"), "commonName")

        return cls(
            issuer=issuer,
            subject=_name_field(cert.get("subject"), "commonName"),
            valid_from=parse_time("notBefore"),
            valid_to=valid_to,
            days_remaining=(valid_to - now).days if valid_to else None,
            serial_number=cert.get("serialNumber"),
            fingerprint=cls.fingerprint_of(der),
        )

    @classmethod
    def expired(cls, der: Optional[bytes]) -> "CertificateInfo":
        """
        A certificate rejected as expired during verification. Its dates
        cannot be read without verification, so only the state is known.
        """
        return cls(days_remaining=-1, fingerprint=cls.fingerprint_of(der))

    def state(self, warning_days: int) -> Optional[CertificateState]:
        return certificate_state(self.days_remaining, warning_days)

    def to_record(self) -> Dict[str, Any]:
        return {slot: getattr(self, slot) for slot in self.__slots__}


class SSLChecker:
    """
    Opens a verified TLS connection and reads the peer certificate.

    Verification stays on: with CERT_NONE the standard library does not
    decode the certificate. An expired certificate is recognised from the
    verification error.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.timeout = settings.monitoring.ssl_timeout

    @staticmethod
    def _host_port(url: str):
        parsed = urlparse(url)
        return parsed.hostname, parsed.port or 443

    async def _fetch(self, host: str, port: int, context: ssl.SSLContext):
        reader, writer = await asyncio.open_connection(
            host, port, ssl=context, server_hostname=host
        )
        try:
            ssl_object = writer.get_extra_info("ssl_object")
            return ssl_object.getpeercert(binary_form=True), ssl_object.getpeercert()
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (OSError, ssl.SSLError) as e:
                logger.debug(f"[SSL] Error closing connection to {host}: {e}")

    async def inspect(self, url: str) -> CertificateInfo:
        """
        Inspect the certificate served for ``url``.

        Raises:
            ProbeError: If no certificate could be read
        """
        host, port = self._host_port(url)
        context = ssl.create_default_context()

        try:
            der, cert = await asyncio.wait_for(self._fetch(host, port, context), timeout=self.timeout)
        except ssl.SSLCertVerificationError as e:
            if e.verify_code != X509_V_ERR_CERT_HAS_EXPIRED:
                raise ProbeProtocolError(
                    f"Certificate verification failed: {e.verify_message}",
                    target=url, monitor_type="http", cause=e,
                )
            insecure = ssl.create_default_context()
            insecure.check_hostname = False
            insecure.verify_mode = ssl.CERT_NONE
            try:
                der, _ = await asyncio.wait_for(self._fetch(host, port, insecure), timeout=self.timeout)
            except (OSError, asyncio.TimeoutError):
                der = None
            return CertificateInfo.expired(der)
        except ssl.SSLError as e:
            raise ProbeProtocolError(f"TLS error: {e}", target=url, monitor_type="http", cause=e)
        except asyncio.TimeoutError as e:
            raise ProbeTimeout(f"TLS handshake with {host}:{port} timed out",
                               timeout=self.timeout, target=url, monitor_type="http", cause=e)
        except OSError as e:
            raise ProbeConnectionError(f"Cannot connect to {host}:{port}: {e}",
                                       target=url, monitor_type="http", cause=e)

        return CertificateInfo.from_peer(cert or {}, der)


# ============================================================================
# CHECK EXECUTOR
# ============================================================================

SSL_EVENTS = {
    CertificateState.EXPIRED: NotificationEvent.SSL_EXPIRED,
    CertificateState.EXPIRING: NotificationEvent.SSL_EXPIRING,
    CertificateState.VALID: NotificationEvent.SSL_VALID,
}


class CheckExecutor:
    """
    Runs one check: probe, classify, append one heartbeat, notify.

    Lifecycle of a single execution: Idle → Probing → Recorded. The
    executor never raises for a probe fault or a failed append.
    """

    def __init__(
        self,
        settings: Settings,
        heartbeats: HeartbeatRepository,
        certificates: Optional[SslCertificateRepository] = None,
        alert_manager: Any = None,
        checkers: Optional[Dict[MonitorType, Any]] = None,
        ssl_checker: Optional[SSLChecker] = None,
    ):
        self.settings = settings
        self.heartbeats = heartbeats
        self.certificates = certificates
        self.alert_manager = alert_manager

        self._checkers: Dict[MonitorType, Any] = checkers or {
            MonitorType.HTTP: HTTPChecker(settings),
            MonitorType.ICMP: ICMPChecker(settings),
            MonitorType.DNS: DNSChecker(settings),
        }
        self._ssl_checker = ssl_checker or SSLChecker(settings)

        # monitor id → last recorded status, seeded from the store
        self._last_status: Dict[int, Optional[HeartbeatStatus]] = {}
        # monitor id → monotonic time of the last certificate inspection
        self._ssl_attempts: Dict[int, float] = {}
        # monitor id → certificate inspection running beside its checks
        self._inspections: Dict[int, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def execute(
        self,
        snapshot: MonitorSnapshot,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> Optional[Heartbeat]:
        """
        Run one check for ``snapshot``.

        Args:
            snapshot: What to probe
            is_current: Consulted right before the heartbeat is written;
                when it returns False the owning task was retired and the
                result is discarded

        Returns:
            The stored heartbeat, or None if discarded or not persisted
        """
        result = await self.run_probe(snapshot)
        status = result_to_status(result)
        previous = await self._previous_status(snapshot.monitor_id)

        # No await between this check and the append
        if is_current is not None and not is_current():
            logger.debug(
                f"[Executor] Discarding result for retired task of monitor {snapshot.monitor_id}"
            )
            return None

        heartbeat: Optional[Heartbeat] = None
        try:
            heartbeat = await self.heartbeats.append(snapshot.monitor_id, status, result.latency_ms)
        except PersistenceWriteError as e:
            logger.error(f"[Executor] Heartbeat dropped for monitor {snapshot.monitor_id}: {e}")

        if status == HeartbeatStatus.DOWN:
            logger.info(
                f"[Executor] {snapshot.display_name} is DOWN "
                f"({result.reason}, {result.latency_ms}ms)"
            )
        else:
            logger.debug(f"[Executor] {snapshot.display_name} is UP ({result.latency_ms}ms)")

        self._handle_transition(snapshot, previous, status)

        if self._wants_ssl_inspection(snapshot, status):
            self._start_inspection(snapshot)

        return heartbeat

    async def run_probe(self, snapshot: MonitorSnapshot) -> ProbeResult:
        """
        Dispatch to the checker for the monitor's type.
        Unexpected exceptions become a ProbeErr with the elapsed time.
        """
        stopwatch = Stopwatch()
        try:
            checker = self._checkers[MonitorType.parse(snapshot.type)]
            return await checker.probe(snapshot.target)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"[Executor] Probe for monitor {snapshot.monitor_id} ({snapshot.target}) "
                f"raised {type(e).__name__}: {e}"
            )
            return ProbeErr(
                stopwatch.elapsed_ms,
                f"Unexpected error: {StringHelper.truncate(str(e), 200)}",
                ProbeError(StringHelper.truncate(str(e), 200) or type(e).__name__, target=snapshot.target,
                           monitor_type=snapshot.type, cause=e),
            )

    def forget(self, monitor_id: int) -> None:
        """Drop cached state of a monitor that left the registry."""
        self._last_status.pop(monitor_id, None)
        self._ssl_attempts.pop(monitor_id, None)
        self.heartbeats.release(monitor_id)

    async def drain(self) -> None:
        """Wait for certificate inspections that are still running."""
        pending = list(self._inspections.values())
        if pending:
            logger.info(f"[Executor] Waiting for {len(pending)} certificate inspection(s)")
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # STATUS TRANSITIONS
    # ------------------------------------------------------------------

    async def _previous_status(self, monitor_id: int) -> Optional[HeartbeatStatus]:
        if monitor_id in self._last_status:
            return self._last_status[monitor_id]

        try:
            latest = await self.heartbeats.latest(monitor_id)
        except DatabaseException as e:
            logger.warning(f"[Executor] Cannot read last status of monitor {monitor_id}: {e}")
            return None

        return HeartbeatStatus(latest.status) if latest else None

    def _handle_transition(
        self,
        snapshot: MonitorSnapshot,
        previous: Optional[HeartbeatStatus],
        status: HeartbeatStatus,
    ) -> None:
        self._last_status[snapshot.monitor_id] = status

        if status == previous:
            return

        if status == HeartbeatStatus.DOWN:
            logger.warning(f"[Executor] 🔴 DOWNTIME DETECTED: monitor {snapshot.monitor_id} ({snapshot.target})")
            self._notify(NotificationEvent.MONITOR_DOWN, snapshot)
        elif previous == HeartbeatStatus.DOWN:
            logger.info(f"[Executor] 🟢 RECOVERY DETECTED: monitor {snapshot.monitor_id} ({snapshot.target})")
            self._notify(NotificationEvent.MONITOR_UP, snapshot)

    def _notify(self, event: NotificationEvent, snapshot: MonitorSnapshot,
                days_remaining: Optional[int] = None) -> None:
        if self.alert_manager is None:
            logger.info(f"[ALERT] event={event.value} monitor={snapshot.monitor_id}")
            return
        self.alert_manager.enqueue(event, snapshot, days_remaining=days_remaining)

    # ------------------------------------------------------------------
    # SSL INSPECTION
    # ------------------------------------------------------------------

    def _wants_ssl_inspection(self, snapshot: MonitorSnapshot, status: HeartbeatStatus) -> bool:
        monitoring = self.settings.monitoring
        if not monitoring.ssl_check_enabled or self.certificates is None:
            return False
        if snapshot.type != MonitorType.HTTP.value or status != HeartbeatStatus.UP:
            return False
        if not snapshot.target.lower().startswith("https://"):
            return False
        if snapshot.monitor_id in self._inspections:
            return False

        last = self._ssl_attempts.get(snapshot.monitor_id)
        return last is None or time.monotonic() - last >= monitoring.ssl_check_interval

    def _start_inspection(self, snapshot: MonitorSnapshot) -> None:
        monitor_id = snapshot.monitor_id
        task = asyncio.create_task(self.inspect_certificate(snapshot), name=f"ssl-{monitor_id}")
        self._inspections[monitor_id] = task
        task.add_done_callback(lambda done: self._inspection_done(monitor_id, done))

    def _inspection_done(self, monitor_id: int, task: asyncio.Task) -> None:
        self._inspections.pop(monitor_id, None)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error(
                f"[SSL] Certificate inspection of monitor {monitor_id} crashed"
            )

    async def inspect_certificate(self, snapshot: MonitorSnapshot) -> Optional[CertificateInfo]:
        """
        Inspect, store and compare the certificate of an https monitor.
        Failures are logged; they never affect the heartbeat.
        """
        monitoring = self.settings.monitoring
        monitor_id = snapshot.monitor_id
        first_attempt = monitor_id not in self._ssl_attempts
        self._ssl_attempts[monitor_id] = time.monotonic()

        try:
            stored = await self.certificates.get(monitor_id)
        except DatabaseException as e:
            logger.warning(f"[SSL] Cannot load stored certificate of monitor {monitor_id}: {e}")
            return None

        # A previous run inspected it recently
        if first_attempt and stored is not None and stored.last_checked:
            age = (TimeHelper.get_utc_now() - TimeHelper.ensure_utc(stored.last_checked)).total_seconds()
            if age < monitoring.ssl_check_interval:
                return None

        previous_state = certificate_state(
            stored.days_remaining if stored else None, monitoring.ssl_warning_days
        )

        try:
            info = await self._ssl_checker.inspect(snapshot.target)
        except ProbeError as e:
            logger.warning(f"[SSL] Inspection of {snapshot.target} failed: {e.message}")
            return None

        try:
            await self.certificates.upsert(monitor_id, **info.to_record())
        except DatabaseException as e:
            logger.error(f"[SSL] Cannot store certificate of monitor {monitor_id}: {e}")

        state = info.state(monitoring.ssl_warning_days)
        logger.debug(f"[SSL] {snapshot.target}: {state.value if state else 'unknown'}, "
                     f"{info.days_remaining} days remaining")

        if state is None or state == previous_state:
            return info
        if state == CertificateState.VALID and previous_state is None:
            return info

        self._notify(SSL_EVENTS[state], snapshot, days_remaining=info.days_remaining)
        return info


# ============================================================================
# END OF CHECK EXECUTION MODULE
# ============================================================================
