# tests/conftest.py
import os
import tempfile
import types

import pytest
from freezegun import freeze_time

from modules.pf_watch.lib.lodestone import AchievementResult
from modules.pf_watch.lib.models import AchievementStatus
from modules.pf_watch.lib.reference import load_reference_data


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Logs go to a throwaway dir per test
    monkeypatch.setenv("LOG_DIR", tempfile.mkdtemp(prefix="pf-pytest-logs-"))
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")

    # A developer's shell config must not leak into unit tests
    for name in list(os.environ):
        if name.startswith("FFXIV_PTFINDER_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("PF_WATCH_DATA_DIR", raising=False)
    monkeypatch.delenv("DISCORD_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    yield


@pytest.fixture(autouse=True)
def no_send_env(monkeypatch):
    monkeypatch.setenv("SEND_WEBHOOK", "0")
    monkeypatch.setenv("PF_WATCH_DRY_RUN", "1")
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


@pytest.fixture
def log_dir():
    return os.environ["LOG_DIR"]


# ---------------------------------------------------------------------
# Reference data + markup builders
# ---------------------------------------------------------------------
@pytest.fixture(scope="session")
def reference():
    return load_reference_data()


def _slot_html(tags, title=None):
    title_attr = f' title="{title}"' if title is not None else ""
    return f'<div class="{tags}"{title_attr}></div>'


def build_listing_html(
    listing_id="1",
    *,
    dc="Mana",
    category="HighEndDuty",
    duty="絶もうひとつの未来",
    creator="Taro Yamada @ Gaia",
    description="",
    party=(),
):
    """One xivpf-style listing node. `party` is a sequence of (classes, title|None)."""
    id_attr = f' data-id="{listing_id}"' if listing_id is not None else ""
    dc_attr = f' data-centre="{dc}"' if dc is not None else ""
    cat_attr = f' data-pf-category="{category}"' if category is not None else ""
    duty_html = f'<div class="duty cross" title="{duty}">{duty}</div>' if duty is not None else ""
    creator_html = (
        f'<div class="right meta"><div class="item creator"><span class="text">{creator}</span></div></div>'
        if creator is not None
        else ""
    )
    slots = "".join(_slot_html(tags, title) for tags, title in party)
    return (
        f'<div class="listing"{id_attr}{dc_attr}{cat_attr}>'
        f'<div class="left">{duty_html}<div class="description">{description}</div></div>'
        f"{creator_html}"
        f'<div class="party">{slots}</div>'
        f"</div>"
    )


def wrap_listings(*nodes, container=True):
    body = "".join(nodes)
    if container:
        body = f'<div id="listings" class="list">{body}</div>'
    return f"<html><body>{body}</body></html>"


@pytest.fixture
def listing_html():
    return build_listing_html


@pytest.fixture
def page_html():
    return wrap_listings


# ---------------------------------------------------------------------
# Identity lookup double
# ---------------------------------------------------------------------
class FakeLookup:
    """
    Scripted identity lookup. `profiles` maps search URL -> profile URL (or an
    Exception to raise); `achievements` maps achievement URL -> AchievementResult
    (or an Exception).
    """

    def __init__(self, profiles=None, achievements=None):
        self.profiles = dict(profiles or {})
        self.achievements = dict(achievements or {})
        self.search_calls = []
        self.achievement_calls = []

    def search_url(self, info):
        return f"https://lodestone.test/search?q={info.name}&world={info.world}"

    def achievement_url(self, profile_url):
        return profile_url.rstrip("/") + "/achievement/category/4/"

    async def find_profile(self, search_url):
        self.search_calls.append(search_url)
        value = self.profiles.get(search_url)
        if isinstance(value, Exception):
            raise value
        return value

    async def fetch_achievements(self, achievement_url):
        self.achievement_calls.append(achievement_url)
        value = self.achievements.get(achievement_url, AchievementResult(AchievementStatus.OK, ()))
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def fake_lookup():
    return FakeLookup


@pytest.fixture
def stub_webhook(monkeypatch):
    """Capture runner deliveries instead of posting."""
    sent = {"calls": []}

    def post_messages(url, messages, **kwargs):
        messages = list(messages)
        sent["calls"].append({"url": url, "messages": messages})
        return len(messages)

    monkeypatch.setattr("service.runner.post_messages", post_messages, raising=True)
    return types.SimpleNamespace(sent=sent)
