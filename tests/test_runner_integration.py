import re

import pytest

HOOK = "https://discord.test/api/webhooks/1/abc"


@pytest.fixture
def listings_file(tmp_path, listing_html, page_html):
    path = tmp_path / "listings.html"
    path.write_text(
        page_html(
            listing_html("1", dc="Mana", description="[Practice] 固定"),
            listing_html("2", dc="Gaia", description="野良"),
        ),
        encoding="utf-8",
    )
    return str(path)


def test_runner_calls_module_and_returns_text(stub_webhook, listings_file):
    from service import runner

    text, run_id = runner.run_module_once(
        module="modules.pf_watch",
        kwargs={"listings_url": listings_file, "enrich": "false"},
        send=False,
    )
    assert isinstance(run_id, str) and re.match(r"^[a-f0-9]+$", run_id)
    assert "コンテンツ:" in text
    assert stub_webhook.sent["calls"] == []


def test_runner_webhook_path_when_enabled(stub_webhook, monkeypatch, listings_file):
    from service import runner

    monkeypatch.delenv("PF_WATCH_DRY_RUN", raising=False)

    runner.run_module_once(
        module="modules.pf_watch",
        kwargs={"listings_url": listings_file, "enrich": False},
        send=True,
        webhook_url=HOOK,
    )

    calls = stub_webhook.sent["calls"]
    assert len(calls) == 1
    assert calls[0]["url"] == HOOK
    assert len(calls[0]["messages"]) == 2
    assert calls[0]["messages"][0].startswith("```\n")


def test_runner_posts_no_match_message(stub_webhook, monkeypatch, listings_file):
    from modules.pf_watch.lib.render import NO_MATCH_MESSAGE
    from service import runner

    monkeypatch.delenv("PF_WATCH_DRY_RUN", raising=False)
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", HOOK)

    runner.run_module_once(
        module="modules.pf_watch",
        kwargs={"listings_url": listings_file, "enrich": False, "filter_json": '{"dutyTitle": {"terms": ["none"]}}'},
        send=True,
    )

    assert stub_webhook.sent["calls"] == [{"url": HOOK, "messages": [NO_MATCH_MESSAGE]}]


def test_dry_run_beats_explicit_send(stub_webhook, listings_file):
    from service import runner

    # PF_WATCH_DRY_RUN=1 comes from the autouse fixture
    runner.run_module_once(
        module="modules.pf_watch",
        kwargs={"listings_url": listings_file, "enrich": False},
        send=True,
        webhook_url=HOOK,
    )
    assert stub_webhook.sent["calls"] == []


def test_send_webhook_env_is_the_default(stub_webhook, monkeypatch, listings_file):
    from service import runner

    monkeypatch.delenv("PF_WATCH_DRY_RUN", raising=False)
    monkeypatch.setenv("SEND_WEBHOOK", "1")

    runner.run_module_once(
        module="modules.pf_watch",
        kwargs={"listings_url": listings_file, "enrich": False},
        send=None,
        webhook_url=HOOK,
    )
    assert len(stub_webhook.sent["calls"]) == 1


def test_missing_webhook_url_does_not_fail_the_run(stub_webhook, monkeypatch, listings_file):
    from service import runner

    monkeypatch.delenv("PF_WATCH_DRY_RUN", raising=False)

    text, _ = runner.run_module_once(
        module="modules.pf_watch",
        kwargs={"listings_url": listings_file, "enrich": False},
        send=True,
    )
    assert text
    assert stub_webhook.sent["calls"] == []


def test_delivery_error_is_recorded_not_raised(monkeypatch, listings_file, log_dir):
    import json
    import os

    from service import runner
    from service.webhook import WebhookSendError

    monkeypatch.delenv("PF_WATCH_DRY_RUN", raising=False)

    def failing(url, messages, **kwargs):
        raise WebhookSendError("Webhook returned HTTP 500")

    monkeypatch.setattr("service.runner.post_messages", failing)

    text, run_id = runner.run_module_once(
        module="modules.pf_watch",
        kwargs={"listings_url": listings_file, "enrich": False},
        send=True,
        webhook_url=HOOK,
    )
    assert text

    records = []
    for name in os.listdir(log_dir):
        if name.startswith("activity-test"):
            with open(os.path.join(log_dir, name), encoding="utf-8") as f:
                records.extend(json.loads(line) for line in f)
    (run,) = [r for r in records if r.get("run_id") == run_id]
    assert run["ok"] is True
    assert run["posted"] == 0
    assert run["delivery_error"] == "Webhook returned HTTP 500"


def test_module_failure_is_reraised(stub_webhook):
    from modules.pf_watch.lib.config import ConfigError
    from service import runner

    with pytest.raises(ConfigError):
        runner.run_module_once(module="modules.pf_watch", kwargs={"limit": 0})


def test_env_kwargs_are_resolved(monkeypatch):
    from service.runner import _normalize_kwargs_types

    monkeypatch.setenv("PF_FILTER_FILE", "/srv/filter.json")
    out = _normalize_kwargs_types(
        {"filter_file_env": "PF_FILTER_FILE", "limit": "3", "enrich": "no", "allowed_data_centres": '["Mana"]'}
    )
    assert out == {
        "filter_file_env": "/srv/filter.json",
        "limit": 3,
        "enrich": False,
        "allowed_data_centres": ["Mana"],
    }


@pytest.mark.parametrize(
    "value, text, messages",
    [
        ("hello", "hello", ["hello"]),
        (None, None, []),
        (("body", {"messages": ["a", "", "b"]}), "body", ["a", "b"]),
        ({"text": "t", "meta": {}}, "t", ["t"]),
        ({"message": "only meta"}, None, []),
    ],
)
def test_result_shapes(value, text, messages):
    from service.runner import _coerce_result

    result = _coerce_result(value)
    assert result.ok
    assert result.text == text
    assert result.messages == messages


def test_bad_result_shape_raises():
    from service.runner import _coerce_result

    with pytest.raises(TypeError):
        _coerce_result(42)
