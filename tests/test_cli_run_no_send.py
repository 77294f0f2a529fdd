import pytest


@pytest.fixture
def listings_file(tmp_path, listing_html, page_html):
    path = tmp_path / "listings.html"
    path.write_text(page_html(listing_html("1", description="[Practice] 固定")), encoding="utf-8")
    return str(path)


def test_cli_run_respects_no_send(stub_webhook, capsys, monkeypatch, listings_file):
    from service import cli

    monkeypatch.delenv("PF_WATCH_DRY_RUN", raising=False)
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/api/webhooks/1/abc")

    rc = cli.main(
        ["run", "modules.pf_watch", "--kwargs", f"listings_url={listings_file}", "enrich=false", "--no-send", "--print-text"]
    )
    assert rc == 0
    # Stub should not have captured any deliveries
    assert stub_webhook.sent["calls"] == []
    out, _ = capsys.readouterr()
    assert "SUCCESS" in out
    assert "要件: Practice" in out


def test_cli_run_failure_exit_code(stub_webhook, capsys):
    from service import cli

    rc = cli.main(["run", "modules.pf_watch", "--kwargs", "limit=0", "--no-send"])
    assert rc == 1
    _, err = capsys.readouterr()
    assert "FAILURE" in err


def test_cli_validate_and_list_jobs(tmp_path, capsys):
    import json

    from service import cli

    cfg = tmp_path / "config.json"
    cfg.write_text(
        json.dumps({
            "jobs": [
                {
                    "id": "pf-watch",
                    "module": "modules.pf_watch",
                    "trigger": {"cron": "*/15 * * * *"},
                    "summary": "party finder every 15 min",
                }
            ]
        }),
        encoding="utf-8",
    )

    assert cli.main(["--config", str(cfg), "validate-config"]) == 0
    assert cli.main(["--config", str(cfg), "list-jobs"]) == 0
    out, _ = capsys.readouterr()
    assert "OK: configuration is valid." in out
    assert "pf-watch" in out and "party finder every 15 min" in out


def test_cli_validate_rejects_bad_config(tmp_path, capsys):
    from service import cli

    cfg = tmp_path / "config.json"
    cfg.write_text('{"jobs": [{"module": "modules.pf_watch", "trigger": {}}]}', encoding="utf-8")

    assert cli.main(["--config", str(cfg), "validate-config"]) == 1
    _, err = capsys.readouterr()
    assert "configuration invalid" in err
