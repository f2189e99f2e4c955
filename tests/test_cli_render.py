from __future__ import annotations

import json
import urllib.request
from io import BytesIO

from PIL import Image

import inkframe_app.cli as cli

RSS = b"""<?xml version="1.0"?>
<rss version="2.0"><channel><title>Example</title>
<item><title>Council approves new tram line</title><pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate></item>
<item><title>Storm warning for the coast</title><pubDate>Tue, 02 Jan 2024 09:00:00 GMT</pubDate></item>
</channel></rss>"""


class _Response:
    def __init__(self, body: bytes, status: int = 200) -> None:
        self.body = body
        self.status = status
        self.headers: dict[str, str] = {}

    def read(self) -> bytes:
        return self.body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


def _fake_network(monkeypatch) -> list:
    uploads: list = []

    def fake_urlopen(req, timeout=None, context=None):
        if req.get_method() == "POST":
            uploads.append(req)
            return _Response(b"ok")
        return _Response(RSS)

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    return uploads


def _write_config(tmp_path) -> str:
    path = tmp_path / "config.toml"
    path.write_text(
        'epaper_link_host = "192.168.1.20"\n\n[[tags]]\nmac = "0000021C8D6E3B1A"\nwidth = 152\nheight = 152\n',
        encoding="utf-8",
    )
    return str(path)


def test_render_to_file(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    _fake_network(monkeypatch)
    out = tmp_path / "frame.png"

    rc = cli.main(
        ["render", "--config", _write_config(tmp_path), "--feed", "https://example.test/rss",
         "--out", str(out), "--width", "296", "--height", "128"]
    )

    assert rc == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["status"] == "rendered"
    assert summary["placed"] == 2
    assert summary["source"] == "example.test"
    with Image.open(out) as image:
        assert image.size == (296, 128)
        assert image.mode == "1"


def test_render_format_follows_suffix(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    _fake_network(monkeypatch)
    out = tmp_path / "frame.jpg"

    rc = cli.main(["render", "--config", _write_config(tmp_path), "--out", str(out), "--width", "200", "--height", "96"])

    assert rc == 0
    assert json.loads(capsys.readouterr().out)["format"] == "jpeg"
    assert Image.open(BytesIO(out.read_bytes())).format == "JPEG"


def test_render_to_registered_tag(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    uploads = _fake_network(monkeypatch)

    rc = cli.main(["render", "--config", _write_config(tmp_path), "--module", "news-headlines", "--tag", "0000021C8D6E3B1A"])

    assert rc == 0
    summary = json.loads(capsys.readouterr().out)
    assert (summary["width"], summary["height"], summary["format"]) == (152, 152, "jpeg")
    assert len(uploads) == 1
    assert uploads[0].full_url == "http://192.168.1.20/imgupload"
    assert b"0000021C8D6E3B1A" in uploads[0].data


def test_render_rejects_unknown_tag(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    uploads = _fake_network(monkeypatch)

    rc = cli.main(["render", "--config", _write_config(tmp_path), "--tag", "FFFFFFFFFFFFFFFF"])

    assert rc == 2
    assert "No tag with MAC" in json.loads(capsys.readouterr().out)["error"]
    assert uploads == []


def test_render_feed_failure_exits_nonzero(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    def offline(req, timeout=None, context=None):
        raise OSError("network unreachable")

    monkeypatch.setattr(urllib.request, "urlopen", offline)
    out = tmp_path / "frame.png"

    rc = cli.main(["render", "--config", _write_config(tmp_path), "--out", str(out), "--width", "296", "--height", "128"])

    assert rc == 1
    assert json.loads(capsys.readouterr().out)["status"] == "no-content"
    assert not out.exists()


def test_sources_lists_presets(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    rc = cli.main(["sources", "--config", str(tmp_path / "missing.json")])

    assert rc == 0
    names = [s["name"] for s in json.loads(capsys.readouterr().out)["sources"]]
    assert names == ["Tagesschau", "Spiegel", "Sueddeutsche", "Zeit"]


def test_run_bounded_loop(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setattr(cli, "install_crash_hooks", lambda: None)
    _fake_network(monkeypatch)
    cfg = tmp_path / "config.json"
    cfg.write_text(json.dumps({"config_version": 2, "output": {"path": str(tmp_path / "loop.png")}}), encoding="utf-8")

    rc = cli.main(["run", "--config", str(cfg), "--max-cycles", "1"])

    assert rc == 0
    status = json.loads(capsys.readouterr().out)
    assert status["cycles"] == 1
    assert status["last_outcome"] == "rendered"
    assert (tmp_path / "loop.png").exists()


def test_config_is_loaded_once_per_invocation(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    loads: list = []
    real_load = cli.load_config

    def counting_load(*args):
        loads.append(args)
        return real_load(*args)

    monkeypatch.setattr(cli, "load_config", counting_load)

    assert cli.main(["sources", "--config", _write_config(tmp_path)]) == 0
    assert len(loads) == 1
