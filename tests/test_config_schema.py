import json

import pytest


@pytest.fixture
def write_config(tmp_path, monkeypatch):
    def _write(cfg, name="config.json"):
        p = tmp_path / name
        if name.endswith((".yml", ".yaml")):
            p.write_text(cfg, encoding="utf-8")
        else:
            p.write_text(json.dumps(cfg), encoding="utf-8")
        monkeypatch.setenv("CONFIG_PATH", str(p))
        return p

    return _write


def _job(**overrides):
    job = {
        "id": "pf-watch",
        "module": "modules.pf_watch",
        "trigger": {"interval": {"minutes": 10}},
        "kwargs": {"limit": 3},
        "send": "true",
        "timeout_sec": "120",
        "summary": "pytest config",
    }
    job.update(overrides)
    return job


def test_load_and_validate_min_config(write_config):
    from service import config_schema

    write_config({"jobs": [_job()]})
    cfg = config_schema.load_config()  # CONFIG_PATH set by fixture
    config_schema.validate(cfg)

    (job,) = cfg["jobs"]
    assert job["send"] is True
    assert job["timeout_sec"] == 120
    assert isinstance(cfg["timezone"], str) and cfg["timezone"]


def test_no_config_path_means_empty_jobs():
    from service import config_schema

    cfg = config_schema.load_config()
    assert cfg["jobs"] == []
    config_schema.validate(cfg)


def test_yaml_config(write_config):
    from service import config_schema

    write_config(
        """
timezone: Asia/Tokyo
jobs:
  - module: modules.pf_watch
    trigger:
      cron: "0 * * * *"
    kwargs:
      filter_file_env: PF_FILTER_FILE
""",
        name="config.yml",
    )
    cfg = config_schema.load_config()
    config_schema.validate(cfg)
    assert cfg["timezone"] == "Asia/Tokyo"
    assert cfg["jobs"][0]["id"] == "modules.pf_watch"


def test_webhook_url_env_is_resolved_and_dropped(write_config, monkeypatch):
    from service import config_schema

    monkeypatch.setenv("PF_HOOK", "https://discord.test/api/webhooks/9/z")
    write_config({"jobs": [_job(webhook_url_env="PF_HOOK")]})

    (job,) = config_schema.load_config()["jobs"]
    assert job["webhook_url"] == "https://discord.test/api/webhooks/9/z"
    assert "webhook_url_env" not in job


def test_unset_webhook_env_gives_none(write_config):
    from service import config_schema

    write_config({"jobs": [_job(webhook_url_env="PF_HOOK_MISSING")]})
    (job,) = config_schema.load_config()["jobs"]
    assert job["webhook_url"] is None


@pytest.mark.parametrize(
    "job",
    [
        _job(module=""),
        _job(trigger={}),
        _job(trigger={"cron": "0 * *"}),
        _job(trigger={"cron": {"hours": 3}}),
        _job(trigger={"interval": {"minutes": 0}}),
        _job(trigger={"interval": {"fortnights": 1}}),
        _job(trigger={"cron": "0 * * * *", "interval": {"minutes": 5}}),
        _job(trigger={"date": "2099-01-01T00:00:00Z"}),
        _job(kwargs=["limit", 3]),
        _job(max_instances=0),
        _job(summary=5),
    ],
)
def test_invalid_jobs(job):
    from service import config_schema

    with pytest.raises(config_schema.ConfigError):
        config_schema.validate({"jobs": [job]})


def test_duplicate_ids_rejected():
    from service import config_schema

    with pytest.raises(config_schema.ConfigError, match="Duplicate"):
        config_schema.validate({"jobs": [_job(), _job()]})


@pytest.mark.parametrize("body", ["[]", "{not json"])
def test_bad_files(tmp_path, body):
    from service import config_schema

    p = tmp_path / "config.json"
    p.write_text(body, encoding="utf-8")
    with pytest.raises(config_schema.ConfigError):
        config_schema.load_config(str(p))


def test_missing_file(tmp_path):
    from service import config_schema

    with pytest.raises(config_schema.ConfigError, match="not found"):
        config_schema.load_config(str(tmp_path / "nope.json"))
