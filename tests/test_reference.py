# tests/test_reference.py
import json

import pytest

from modules.pf_watch.lib.config import ConfigError
from modules.pf_watch.lib.reference import load_reference_data, parse_achievements, parse_jobs, parse_tags


def test_packaged_tables(reference):
    assert reference.code_to_short["WAR"] == "戦"
    assert reference.code_to_role["WHM"] == "healer"
    assert reference.achievement_groups == ("ultimate", "savage")
    assert reference.achievement_short["絶アルテマウェポンを破壊せし者"] == "絶テマ"
    assert reference.achievement_group["万魔殿の辺獄を完全制覇せし者：ランク1"] == "savage"
    assert reference.tags[0].token == "[Practice]"


def test_tables_are_read_only(reference):
    with pytest.raises(TypeError):
        reference.jobs["XXX"] = None


def test_bad_role_is_rejected():
    with pytest.raises(ConfigError, match="role"):
        parse_jobs({"jobs": {"PLD": {"short": "ナ", "role": "support"}}})


@pytest.mark.parametrize(
    "parser, data",
    [
        (parse_jobs, []),
        (parse_jobs, {"jobs": {"PLD": "ナ"}}),
        (parse_tags, {"tags": {}}),
        (parse_tags, {"tags": [{"token": 1, "label": "x"}]}),
        (parse_achievements, {"achievements": [{"name": "x", "short": "y"}]}),
    ],
)
def test_wrong_shapes(parser, data):
    with pytest.raises(ConfigError):
        parser(data)


def test_missing_and_invalid_files(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_reference_data(tmp_path)

    (tmp_path / "jobs_ja.json").write_text("{oops", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid JSON"):
        load_reference_data(tmp_path)


def test_custom_data_dir(tmp_path):
    (tmp_path / "jobs_ja.json").write_text(
        json.dumps({"version": 1, "jobs": {"WAR": {"short": "W", "role": "tank"}}}), encoding="utf-8"
    )
    (tmp_path / "description_tags_ja.json").write_text(json.dumps({"version": 1, "tags": []}), encoding="utf-8")
    (tmp_path / "achievements_ja.json").write_text(
        json.dumps({"version": 1, "achievements": []}), encoding="utf-8"
    )

    ref = load_reference_data(tmp_path)

    assert dict(ref.code_to_short) == {"WAR": "W"}
    assert ref.tags == ()
    assert ref.achievement_groups == ()
