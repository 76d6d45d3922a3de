import threading
import time

import pytest
import requests

from inspektor.analyzer import (
    AIAnalyzer,
    GeminiBackend,
    RuleBasedAnalyzer,
    build_prompt,
    create_analyzer,
    parse_response,
)
from inspektor.config import Settings
from inspektor.diagnostics import Finding, FindingKind, diagnose
from inspektor.errors import AIBackendError, MalformedResponseError


class FakeBackend:
    def __init__(self, replies=(), reachable=True):
        self.replies = list(replies)
        self.reachable = reachable
        self.prompts = []
        self.timeouts = []

    def probe(self):
        return self.reachable

    def generate(self, prompt, timeout):
        self.prompts.append(prompt)
        self.timeouts.append(timeout)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.calls = []

    def _send(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._send("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._send("POST", url, **kwargs)


def test_parse_healthy_reply_wins_over_noise():
    assert parse_response("Here is my analysis\nHEALTHY: no issues\nsome trailing text") == []


def test_parse_healthy_after_warnings_still_empty():
    assert parse_response("WARNING: CPU is high\nHEALTHY: no issues") == []


def test_parse_warning_then_recommendation():
    findings = parse_response("WARNING: X\nRECOMMEND: Y")
    assert findings == [
        Finding(FindingKind.WARNING, "X"),
        Finding(FindingKind.RECOMMENDATION, "Y"),
    ]


def test_parse_keeps_line_order_and_drops_unknown_lines():
    reply = """
    Analysis follows.
      RECOMMEND:   enable log rotation
    WARNING: 1500 open files
    NOTE: ignored
    WARNING:
    """
    findings = parse_response(reply)
    assert [(f.kind, f.message) for f in findings] == [
        (FindingKind.RECOMMENDATION, "enable log rotation"),
        (FindingKind.WARNING, "1500 open files"),
    ]


def test_parse_without_known_prefix_is_malformed():
    with pytest.raises(MalformedResponseError):
        parse_response("I cannot help with that.")
    with pytest.raises(MalformedResponseError):
        parse_response("")


def test_prompt_embeds_snapshot_fields(snapshot_factory):
    prompt = build_prompt(snapshot_factory(open_files=77, connections=9, children=4))
    for expected in (
        "PID: 4242",
        "Name: api-server",
        "Status: sleeping",
        "Command: /usr/local/bin/api-server --port 8080",
        "Process Age: 1:00:00",
        "Open Files: 77",
        "Network Connections: 9",
        "Child Processes: 4",
        "CPU Cores: 8",
        "System CPU Usage: 20.00%",
        "Free Memory: 8.0 GiB",
        "At most 7 items",
    ):
        assert expected in prompt


def test_prompt_with_unknown_start_time(snapshot_factory):
    assert "Process Age: unknown" in build_prompt(snapshot_factory(age=None))


def test_ai_analyzer_returns_parsed_findings(snapshot_factory):
    backend = FakeBackend(["WARNING: slow\nRECOMMEND: profile it"])
    analyzer = AIAnalyzer(backend, timeout=12.0)
    findings = analyzer.analyze(snapshot_factory())
    assert [f.message for f in findings] == ["slow", "profile it"]
    assert backend.timeouts == [12.0]


@pytest.mark.parametrize(
    "failure",
    [
        AIBackendError("request timed out after 30 seconds"),
        AIBackendError("HTTP 503: unavailable"),
        "   ",
        "No structured lines here",
        RuntimeError("backend plugin crashed"),
        TypeError("unexpected payload shape"),
    ],
)
def test_ai_analyzer_falls_back_to_rules(snapshot_factory, failure):
    snapshot = snapshot_factory(cpu_percent=95, system_memory_percent=92)
    analyzer = AIAnalyzer(FakeBackend([failure]), timeout=30.0)
    assert analyzer.analyze(snapshot) == diagnose(snapshot)


def test_fallback_is_per_call(snapshot_factory):
    snapshot = snapshot_factory(cpu_percent=95)
    backend = FakeBackend([AIBackendError("boom"), "HEALTHY: No issues detected"])
    analyzer = AIAnalyzer(backend, timeout=30.0)
    assert analyzer.analyze(snapshot) == diagnose(snapshot)
    assert analyzer.analyze(snapshot) == []
    assert len(backend.prompts) == 2


def test_rule_based_analyzer_is_deterministic(snapshot_factory):
    snapshot = snapshot_factory(cpu_percent=85, open_files=2000)
    analyzer = RuleBasedAnalyzer()
    assert analyzer.analyze(snapshot) == analyzer.analyze(snapshot) == diagnose(snapshot)


def test_create_analyzer_without_key_is_rule_only():
    backend = FakeBackend()
    assert isinstance(create_analyzer(Settings(api_key=""), backend), RuleBasedAnalyzer)


def test_create_analyzer_disabled_is_rule_only():
    backend = FakeBackend()
    assert isinstance(create_analyzer(Settings(api_key="k", ai_enabled=False), backend), RuleBasedAnalyzer)


def test_create_analyzer_unreachable_backend_is_rule_only():
    backend = FakeBackend(reachable=False)
    assert isinstance(create_analyzer(Settings(api_key="k"), backend), RuleBasedAnalyzer)


def test_create_analyzer_with_reachable_backend():
    analyzer = create_analyzer(Settings(api_key="k"), FakeBackend())
    assert isinstance(analyzer, AIAnalyzer)


def test_gemini_backend_extracts_candidate_text():
    body = {"candidates": [{"content": {"parts": [{"text": "WARNING: a"}, {"text": "RECOMMEND: b"}]}}]}
    session = FakeSession(FakeResponse(body=body))
    backend = GeminiBackend(Settings(api_key="secret", model="m1", endpoint="https://api.test/v1"), session)

    assert backend.generate("prompt", timeout=7.5) == "WARNING: a\nRECOMMEND: b"
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url == "https://api.test/v1/models/m1:generateContent"
    assert kwargs["timeout"] == 7.5
    assert kwargs["json"]["contents"][0]["parts"][0]["text"] == "prompt"
    assert session.headers["x-goog-api-key"] == "secret"


def test_gemini_backend_timeout_is_backend_error():
    session = FakeSession(error=requests.exceptions.Timeout("read timed out"))
    backend = GeminiBackend(Settings(api_key="k"), session)
    with pytest.raises(AIBackendError, match="timed out"):
        backend.generate("prompt", timeout=30.0)


def test_gemini_backend_http_error():
    session = FakeSession(FakeResponse(status_code=429, text="quota exceeded"))
    backend = GeminiBackend(Settings(api_key="k"), session)
    with pytest.raises(AIBackendError, match="HTTP 429"):
        backend.generate("prompt", timeout=30.0)


@pytest.mark.parametrize(
    "body",
    [
        {"candidates": []},
        {"promptFeedback": {"blockReason": "SAFETY"}},
        {"candidates": [{"content": {"parts": [{"text": "  "}]}}]},
        {"candidates": [{"content": {"parts": None}}]},
        {"candidates": [{"content": {"parts": [{"text": None}]}}]},
        {"candidates": [{"content": {"parts": ["WARNING: bare string"]}}]},
        ["not", "an", "object"],
    ],
)
def test_gemini_backend_empty_payload(body):
    backend = GeminiBackend(Settings(api_key="k"), FakeSession(FakeResponse(body=body)))
    with pytest.raises(MalformedResponseError):
        backend.generate("prompt", timeout=30.0)


def test_gemini_backend_probe():
    assert GeminiBackend(Settings(api_key="k"), FakeSession(FakeResponse())).probe() is True
    assert GeminiBackend(Settings(api_key="k"), FakeSession(FakeResponse(status_code=403))).probe() is False
    failing = FakeSession(error=requests.exceptions.ConnectionError("offline"))
    assert GeminiBackend(Settings(api_key="k"), failing).probe() is False


@pytest.mark.parametrize(
    "body",
    [
        {"candidates": [{"content": {"parts": None}}]},
        {"candidates": [{"content": {"parts": [{"text": None}]}}]},
    ],
)
def test_ai_analyzer_survives_broken_payload(snapshot_factory, body):
    snapshot = snapshot_factory(cpu_percent=95)
    backend = GeminiBackend(Settings(api_key="k"), FakeSession(FakeResponse(body=body)))
    analyzer = AIAnalyzer(backend, timeout=30.0)
    assert analyzer.analyze(snapshot) == diagnose(snapshot)


class StallingSession(FakeSession):
    def __init__(self):
        super().__init__()
        self.released = threading.Event()

    def post(self, url, **kwargs):
        self.released.wait(5.0)
        return FakeResponse(body={"candidates": [{"content": {"parts": [{"text": "WARNING: late"}]}}]})


def test_gemini_backend_enforces_wall_clock_deadline():
    session = StallingSession()
    backend = GeminiBackend(Settings(api_key="k"), session)

    started = time.monotonic()
    try:
        with pytest.raises(AIBackendError, match="no reply within"):
            backend.generate("prompt", timeout=0.1)
        assert time.monotonic() - started < 2.0
    finally:
        session.released.set()


def test_stalled_backend_falls_back_to_rules(snapshot_factory):
    session = StallingSession()
    snapshot = snapshot_factory(system_cpu_percent=95)
    analyzer = AIAnalyzer(GeminiBackend(Settings(api_key="k"), session), timeout=0.1)
    try:
        assert analyzer.analyze(snapshot) == diagnose(snapshot)
    finally:
        session.released.set()
