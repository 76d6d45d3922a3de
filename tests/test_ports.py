from collections import namedtuple

import psutil
import pytest

from inspektor import ports
from inspektor.errors import CollectionError, InvalidPortError, NoListenerError, NoValidProcessError

Addr = namedtuple("Addr", "ip port")
Conn = namedtuple("Conn", "laddr status pid")


def listen(port, pid):
    return Conn(Addr("0.0.0.0", port), psutil.CONN_LISTEN, pid)


def established(port, pid):
    return Conn(Addr("10.0.0.5", port), psutil.CONN_ESTABLISHED, pid)


def install(monkeypatch, connections, alive=()):
    monkeypatch.setattr(ports.psutil, "net_connections", lambda kind="inet": list(connections))
    monkeypatch.setattr(ports.psutil, "pid_exists", lambda pid: pid in alive)


def test_no_listener_on_port(monkeypatch):
    install(monkeypatch, [established(8080, 10), listen(9090, 11), Conn((), psutil.CONN_NONE, 12)], alive={10, 11, 12})
    with pytest.raises(NoListenerError) as excinfo:
        ports.resolve_by_port(8080)
    assert excinfo.value.port == 8080


def test_single_listener_is_returned(monkeypatch):
    install(monkeypatch, [established(8080, 10), listen(8080, 42)], alive={10, 42})
    assert ports.resolve_by_port(8080) == 42


def test_first_live_candidate_wins(monkeypatch):
    install(monkeypatch, [listen(5432, None), listen(5432, 0), listen(5432, 77), listen(5432, 78)], alive={78})
    assert ports.resolve_by_port(5432) == 78


def test_all_candidates_gone(monkeypatch):
    install(monkeypatch, [listen(5432, None), listen(5432, 77)], alive=set())
    with pytest.raises(NoValidProcessError):
        ports.resolve_by_port(5432)


@pytest.mark.parametrize("port", [0, -1, 65536, True])
def test_invalid_port_rejected(monkeypatch, port):
    install(monkeypatch, [listen(1, 1)], alive={1})
    with pytest.raises(InvalidPortError):
        ports.resolve_by_port(port)


def test_connection_table_denied(monkeypatch):
    def denied(kind="inet"):
        raise psutil.AccessDenied()

    monkeypatch.setattr(ports.psutil, "net_connections", denied)
    with pytest.raises(CollectionError):
        ports.resolve_by_port(80)
