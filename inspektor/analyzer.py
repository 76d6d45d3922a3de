"""Turn a snapshot into findings, via an AI backend when one is configured.

``create_analyzer`` decides once which strategy an analyzer uses. The AI
strategy falls back to the rule-based one for any call whose backend reply is
unusable; neither strategy ever raises.
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import timedelta
from typing import Any, Dict, List, Optional, Protocol, Tuple

import requests

from .config import Settings
from .diagnostics import Finding, diagnose, recommendation, warning
from .errors import AIBackendError, MalformedResponseError
from .formatting import format_bytes
from .system_state import CombinedSnapshot

logger = logging.getLogger(__name__)

MAX_AI_FINDINGS = 7
PROBE_TIMEOUT = 5.0

WARNING_PREFIX = "WARNING:"
RECOMMEND_PREFIX = "RECOMMEND:"
HEALTHY_PREFIX = "HEALTHY:"


class Analyzer(Protocol):
    def analyze(self, snapshot: CombinedSnapshot) -> List[Finding]: ...


class Backend(Protocol):
    def generate(self, prompt: str, timeout: float) -> str: ...

    def probe(self) -> bool: ...


class RuleBasedAnalyzer:
    """Pure, deterministic analysis from fixed thresholds."""

    def analyze(self, snapshot: CombinedSnapshot) -> List[Finding]:
        return diagnose(snapshot)


class AIAnalyzer:
    def __init__(self, backend: Backend, timeout: float) -> None:
        self._backend = backend
        self._timeout = timeout

    def analyze(self, snapshot: CombinedSnapshot) -> List[Finding]:
        prompt = build_prompt(snapshot)
        try:
            reply = self._backend.generate(prompt, self._timeout)
            return parse_response(reply)
        except AIBackendError as exc:
            logger.warning("AI analysis failed: %s. Falling back to rule-based analysis.", exc)
        except Exception as exc:
            logger.warning(
                "AI analysis failed unexpectedly: %s. Falling back to rule-based analysis.", exc, exc_info=exc
            )
        return diagnose(snapshot)


class GeminiBackend:
    """Minimal client for the Generative Language ``generateContent`` REST call."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._session.headers.update({"x-goog-api-key": settings.api_key})

    @property
    def model_url(self) -> str:
        return f"{self._settings.endpoint}/models/{self._settings.model}"

    def probe(self) -> bool:
        try:
            response = self._session.get(self.model_url, timeout=PROBE_TIMEOUT)
        except requests.exceptions.RequestException as exc:
            logger.debug("AI backend probe failed: %s", exc)
            return False
        if response.status_code != 200:
            logger.debug("AI backend probe returned HTTP %d", response.status_code)
            return False
        return True

    def generate(self, prompt: str, timeout: float) -> str:
        """Return the reply text, or raise AIBackendError once ``timeout`` seconds have passed.

        The request runs on a daemon thread so a backend that trickles bytes
        cannot outlive the deadline; an abandoned request never blocks exit.
        """
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self._settings.temperature},
        }
        outcome: "queue.Queue[Tuple[bool, Any]]" = queue.Queue(maxsize=1)
        worker = threading.Thread(
            target=self._request_into,
            args=(payload, timeout, outcome),
            daemon=True,
            name="GeminiRequest",
        )
        worker.start()
        try:
            ok, value = outcome.get(timeout=timeout)
        except queue.Empty:
            raise AIBackendError(f"no reply within {timeout:g} seconds") from None
        if not ok:
            raise value
        return value

    def _request_into(self, payload: Dict[str, Any], timeout: float, outcome: "queue.Queue[Tuple[bool, Any]]") -> None:
        try:
            outcome.put((True, self._request(payload, timeout)))
        except Exception as exc:
            # Re-raised on the calling thread by generate().
            outcome.put((False, exc))

    def _request(self, payload: Dict[str, Any], timeout: float) -> str:
        try:
            response = self._session.post(f"{self.model_url}:generateContent", json=payload, timeout=timeout)
        except requests.exceptions.Timeout as exc:
            raise AIBackendError(f"request timed out after {timeout:g} seconds") from exc
        except requests.exceptions.RequestException as exc:
            raise AIBackendError(f"request failed: {exc}") from exc

        if response.status_code != 200:
            raise AIBackendError(f"HTTP {response.status_code}: {response.text[:200]}")
        try:
            body = response.json()
        except ValueError as exc:
            raise AIBackendError("response body is not JSON") from exc
        return _candidate_text(body)


def create_analyzer(settings: Settings, backend: Optional[Backend] = None) -> Analyzer:
    """Pick the analysis strategy for the lifetime of the returned analyzer."""
    if not settings.ai_enabled:
        logger.info("AI analysis disabled; using rule-based analysis.")
        return RuleBasedAnalyzer()
    if not settings.ai_configured:
        logger.warning("GEMINI_API_KEY not found. AI analysis will use fallback rules.")
        return RuleBasedAnalyzer()

    backend = backend or GeminiBackend(settings)
    if not backend.probe():
        logger.warning("AI backend %s is unreachable. Using fallback analysis.", settings.model)
        return RuleBasedAnalyzer()
    return AIAnalyzer(backend, settings.timeout)


def parse_response(text: str) -> List[Finding]:
    """Classify ``WARNING:``/``RECOMMEND:`` lines in reply order.

    Any ``HEALTHY:`` line means no findings at all. Raises
    MalformedResponseError if no line carries a known prefix.
    """
    findings: List[Finding] = []
    recognised = False
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith(HEALTHY_PREFIX):
            return []
        if line.startswith(WARNING_PREFIX):
            recognised = True
            message = line[len(WARNING_PREFIX):].strip()
            if message:
                findings.append(warning(message))
        elif line.startswith(RECOMMEND_PREFIX):
            recognised = True
            message = line[len(RECOMMEND_PREFIX):].strip()
            if message:
                findings.append(recommendation(message))

    if not recognised:
        raise MalformedResponseError("reply contains no WARNING/RECOMMEND/HEALTHY lines")
    return findings


def build_prompt(snapshot: CombinedSnapshot) -> str:
    process = snapshot.process
    system = snapshot.system
    age = snapshot.process_age()
    age_text = str(timedelta(seconds=round(age))) if age is not None else "unknown"

    return f"""You are a senior system administrator reviewing a single running process and the host it runs on.
Identify real problems and give specific, actionable advice.

PROCESS:
- PID: {process.pid}
- Name: {process.name}
- Status: {process.status.value}
- Command: {process.cmdline}
- Process Age: {age_text}
- CPU Usage: {process.cpu_percent:.2f}%
- Memory RSS: {format_bytes(process.memory_rss)} ({process.memory_percent:.2f}% of system)
- Memory VMS: {format_bytes(process.memory_vms)}
- Open Files: {process.open_files}
- Network Connections: {process.connections}
- Child Processes: {process.children}

SYSTEM:
- CPU Cores: {system.cpu_count}
- System CPU Usage: {system.cpu_percent:.2f}%
- Total Memory: {format_bytes(system.memory_total)}
- Used Memory: {format_bytes(system.memory_used)} ({system.memory_percent:.2f}%)
- Free Memory: {format_bytes(system.memory_free)}

WHAT TO LOOK FOR:
1. CPU and memory use that is unusual for this kind of process, and exhaustion risks.
2. Zombie or stopped state, descriptor or connection leaks, runaway child spawning.
3. Host-wide pressure that could lead to OOM kills or call for scaling.
4. Preventive measures: resource limits (ulimit, cgroups, systemd), alert thresholds, tuning.
5. Concrete commands or configuration changes where they apply.

RESPONSE FORMAT:
- One item per line, nothing else.
- Prefix problems with "{WARNING_PREFIX}" and advice with "{RECOMMEND_PREFIX}".
- If nothing needs attention, reply with the single line "{HEALTHY_PREFIX} No issues detected".
- At most {MAX_AI_FINDINGS} items in total, most critical first.

EXAMPLE:
{WARNING_PREFIX} High CPU usage (85%) may indicate a busy loop or an undersized host
{RECOMMEND_PREFIX} Cap CPU with systemd (CPUQuota=80%) to protect other services
{WARNING_PREFIX} 1500 open files - possible file descriptor leak
{RECOMMEND_PREFIX} Inspect descriptors with 'lsof -p {process.pid}' and raise 'ulimit -n' only after fixing the leak

ANALYSIS:"""


def _candidate_text(body: Any) -> str:
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as exc:
        raise MalformedResponseError("no candidates in AI response") from exc
    if not isinstance(parts, list):
        raise MalformedResponseError("candidate content has no parts list")

    texts = []
    for part in parts:
        text = part.get("text") if isinstance(part, dict) else None
        if not isinstance(text, str):
            raise MalformedResponseError("candidate part has no text")
        texts.append(text)
    text = "\n".join(texts)
    if not text.strip():
        raise MalformedResponseError("empty AI response")
    return text
