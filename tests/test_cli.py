import json

from apiprobe import __version__, http_client
from apiprobe.cli import main
from apiprobe.models import ExecutionOutcome


def _fake_send(request, timeout_ms, cancel_event=None):
    headers = {"Allow": "GET, PUT"} if request.method == "OPTIONS" else {}
    return ExecutionOutcome(
        success=True,
        method=request.method,
        status=200,
        response_time_ms=3,
        response_headers=headers,
        request_url=request.url,
        request_path=request.path,
    )


def test_version(capsys):
    assert main(["--version"]) == 0
    assert capsys.readouterr().out.strip() == __version__


def test_curl_prints_commands(tmp_path, capsys):
    endpoints = tmp_path / "endpoints.txt"
    endpoints.write_text("POST /pets\n", encoding="utf-8")
    code = main(["curl", str(endpoints), "--base-url", "http://api.local", "--header", "X-Key: 1"])
    assert code == 0
    out = capsys.readouterr().out
    assert out.startswith("curl -X POST")
    assert "http://api.local/pets" in out
    assert "X-Key: 1" in out


def test_run_writes_report(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(http_client, "send_request", _fake_send)
    endpoints = tmp_path / "endpoints.txt"
    endpoints.write_text("GET /a\nGET /b\n", encoding="utf-8")
    output = tmp_path / "reports"
    code = main(
        ["run", str(endpoints), "--base-url", "http://api.local", "--delay", "0", "--output", str(output)]
    )
    assert code == 0
    out = capsys.readouterr().out
    assert "completed: 2 tested, 2 responded, 0 failed" in out
    report = json.loads(next(output.glob("endpoints_*.json")).read_text(encoding="utf-8"))
    assert report["summary"]["total"] == 2
    assert report["not_tested"] == 0
    assert sorted(entry["test"] for entry in report["outcomes"]) == ["GET /a", "GET /b"]


def test_methods_lists_discovered(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(http_client, "send_request", _fake_send)
    endpoints = tmp_path / "endpoints.txt"
    endpoints.write_text("/pets\n", encoding="utf-8")
    assert main(["methods", str(endpoints), "--base-url", "http://api.local"]) == 0
    assert capsys.readouterr().out.splitlines() == ["[GET] /pets", "[PUT] /pets"]


def test_configuration_errors_exit_2(tmp_path, capsys):
    endpoints = tmp_path / "endpoints.txt"
    endpoints.write_text("/pets\n", encoding="utf-8")
    assert main(["curl", str(endpoints)]) == 2
    assert main(["curl", str(endpoints), "--base-url", "http://x", "--workers", "50"]) == 2
    assert "error:" in capsys.readouterr().err
