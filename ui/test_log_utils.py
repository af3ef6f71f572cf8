import json

from core.request_types import Exchange, ExchangeState
from ui.log_utils import clear_logs, write_cli_log, write_exchange_log


def _exchange(**overrides):
    exchange = Exchange(
        method="POST",
        path="/auth/login",
        prefix="/auth",
        upstream_url="https://api.onepeloton.com/auth/login",
        request_headers=[("cookie", "peloton_session_id=0123456789abcdef"), ("accept", "*/*")],
        response_headers=[("set-cookie", "session=abc; Path=/")],
    )
    for key, value in overrides.items():
        setattr(exchange, key, value)
    return exchange


def test_write_cli_log_appends_lines(tmp_path):
    log_file = tmp_path / "logs" / "proxy.log"

    write_cli_log("STARTUP", "Proxy started", log_file=log_file, port=8080)
    write_cli_log("ERROR", "boom", log_file=log_file)

    lines = log_file.read_text().splitlines()
    assert len(lines) == 2
    assert lines[0].endswith("STARTUP: Proxy started port=8080")
    assert lines[1].endswith("ERROR: boom")


def test_write_exchange_log_redacts_session_headers(tmp_path):
    exchange = _exchange(state=ExchangeState.SUCCEEDED, status_code=200)

    path = write_exchange_log(exchange, log_root=tmp_path)

    payload = json.loads(path.read_text())
    assert path.parent == tmp_path / "exchanges"
    assert payload["status_code"] == 200
    assert payload["state"] == "succeeded"
    assert payload["request_headers"] == [
        ["cookie", "peloto...cdef"],
        ["accept", "*/*"],
    ]
    assert payload["response_headers"] == [["set-cookie", "sessio...th=/"]]
    assert "error" not in payload


def test_write_exchange_log_records_error(tmp_path):
    exchange = _exchange(state=ExchangeState.FAILED)

    path = write_exchange_log(exchange, error="Connection refused", log_root=tmp_path)

    payload = json.loads(path.read_text())
    assert payload["error"] == "Connection refused"
    assert payload["status_code"] is None


def test_clear_logs(tmp_path):
    log_root = tmp_path / "logs"
    (log_root / "exchanges").mkdir(parents=True)
    (log_root / "proxy.log").write_text("old\n")

    clear_logs(log_root)

    assert not log_root.exists()
    clear_logs(log_root)
