import pandas as pd
import pytest
from typer.testing import CliRunner

from pingmap import cli
from pingmap.models import ProbeOutcome
from pingmap.sweep import engine

runner = CliRunner()


@pytest.fixture
def fake_network(monkeypatch, scripted_probe):
    probe = scripted_probe({"192.168.1.2": ProbeOutcome.ANOMALOUS, "192.168.1.3": ProbeOutcome.NO_REPLY})
    captured = {}

    def sweep_with_fake_probe(block, config, on_result=None):
        captured["config"] = config
        return engine.run_sweep(block, config, probe=probe, on_result=on_result)

    def fake_png(fig, path, scale=1.0):
        captured["png"] = path
        captured["fig"] = fig

    monkeypatch.setattr(cli, "run_sweep", sweep_with_fake_probe)
    monkeypatch.setattr(cli, "save_png", fake_png)
    return captured


def test_sweep_writes_png(tmp_path, fake_network):
    out = tmp_path / "lan"
    result = runner.invoke(cli.app, ["sweep", "192.168.1.0/30", "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert fake_network["png"].name == "lan.png"
    assert len(fake_network["fig"].data[0].z) == 60
    assert "2/3 hosts reachable in 192.168.1.0/30" in result.output


def test_sweep_html_and_csv(tmp_path, fake_network):
    out = tmp_path / "lan.html"
    report = tmp_path / "lan.csv"
    result = runner.invoke(
        cli.app,
        ["sweep", "192.168.1.0/30", "-f", "html", "-o", str(out), "--csv", str(report)],
    )
    assert result.exit_code == 0, result.output
    assert out.exists()
    df = pd.read_csv(report)
    assert df["outcome"].tolist() == ["reply", "anomalous", "no_reply"]


def test_options_reach_config(tmp_path, fake_network, monkeypatch):
    monkeypatch.setenv("PINGMAP_POOL_SIZE", "3")
    result = runner.invoke(
        cli.app,
        [
            "sweep", "192.168.1.0/30", "-o", str(tmp_path / "x.png"),
            "--queue-capacity", "4", "--timeout", "1.5", "--max-attempts", "7",
            "--unprivileged", "--fit-canvas",
        ],
    )
    assert result.exit_code == 0, result.output
    config = fake_network["config"]
    assert config.pool_size == 3
    assert config.queue_capacity == 4
    assert config.probe_timeout == 1.5
    assert config.retry.max_attempts == 7
    assert config.privileged is False
    assert config.fit_canvas is True


@pytest.mark.parametrize("cidr", ["192.168.1.0", "192.168.1.0/1", "300.1.1.1/24"])
def test_invalid_cidr_aborts_before_sweeping(cidr, fake_network):
    result = runner.invoke(cli.app, ["sweep", cidr])
    assert result.exit_code == 2
    assert "config" not in fake_network


def test_invalid_pool_size(fake_network):
    result = runner.invoke(cli.app, ["sweep", "10.0.0.0/30", "--pool-size", "0"])
    assert result.exit_code == 2
    assert "config" not in fake_network


def test_repeated_invocations_keep_logging_usable(tmp_path, fake_network):
    first = runner.invoke(cli.app, ["sweep", "10.0.0.0/1"])
    second = runner.invoke(cli.app, ["sweep", "192.168.1.0/30", "-o", str(tmp_path / "again.png")])
    third = runner.invoke(cli.app, ["sweep", "192.168.1.0/30", "-o", str(tmp_path / "again.png"), "-v"])

    assert first.exit_code == 2
    assert second.exit_code == 0, second.output
    assert third.exit_code == 0, third.output


def test_default_png_is_two_pixels_per_prefix_bit(tmp_path, fake_network):
    result = runner.invoke(cli.app, ["sweep", "192.168.1.0/30", "-o", str(tmp_path / "lan.png")])
    assert result.exit_code == 0, result.output
    fig = fake_network["fig"]
    assert (fig.layout.width, fig.layout.height) == (60, 60)


def test_pixel_size_upscales(tmp_path, fake_network):
    result = runner.invoke(
        cli.app, ["sweep", "192.168.1.0/30", "-o", str(tmp_path / "lan.png"), "--pixel-size", "4"],
    )
    assert result.exit_code == 0, result.output
    assert fake_network["fig"].layout.width == 240


def test_html_page_carries_reachable_caption(tmp_path, fake_network):
    out = tmp_path / "lan.html"
    result = runner.invoke(cli.app, ["sweep", "192.168.1.0/30", "-f", "html", "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert "2/3 hosts reachable" in out.read_text(encoding="utf-8")
