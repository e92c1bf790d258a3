import asyncio
from datetime import timedelta

from termscheck_agent.janitor import CacheJanitor
from termscheck_agent.models import Analysis, TabSession, utcnow
from termscheck_agent.reactor import SettingsReactor

from conftest import FakeRacer, Harness, policy_text

URL = "https://example.com/"
TERMS = policy_text("no refunds")


def _analysis(domain="example.com", age=timedelta(0)) -> Analysis:
    return Analysis(domain=domain, risk_score=25, summary="s", timestamp=utcnow() - age)


def test_tab_close_removes_every_cache_entry():
    h = Harness(racer=FakeRacer({"terms": TERMS}))
    janitor = CacheJanitor(h.store, h.sink)

    async def main():
        await h.orchestrator.handle_navigation(7, URL)
        await h.orchestrator.drain()
        janitor.handle_tab_closed(7)

    asyncio.run(main())
    assert h.orchestrator.get_analysis(7) is None
    assert 7 not in h.store.sessions
    assert "example.com" not in h.store.domain_index
    assert 7 not in h.store.watchdogs
    assert h.sink.badge(7) == "none"


def test_tab_close_during_fetch_discards_late_result():
    async def main():
        h = Harness(racer=FakeRacer({"terms": TERMS}, gate=asyncio.Event()))
        janitor = CacheJanitor(h.store, h.sink)
        h.orchestrator.handle_navigation(7, URL)
        await asyncio.sleep(0.01)
        watchdog = h.store.watchdogs[7]
        janitor.handle_tab_closed(7)
        h.racer.gate.set()
        await h.orchestrator.drain()
        await asyncio.sleep(0)
        return h, watchdog

    h, watchdog = asyncio.run(main())
    assert watchdog.cancelled()
    assert h.orchestrator.get_analysis(7) is None
    assert h.store.sessions == {}
    assert h.sink.ready == {}


def test_sweep_evicts_entries_older_than_a_day():
    h = Harness()
    janitor = CacheJanitor(h.store, h.sink, max_age_s=24 * 3600)
    h.store.analyses[1] = _analysis(age=timedelta(hours=25))
    h.store.analyses[2] = _analysis(domain="fresh.com")
    old_session = TabSession(tab_id=1, domain="example.com", url=URL)
    old_session.last_touched_at = utcnow() - timedelta(hours=30)
    h.store.sessions[1] = old_session
    h.store.sessions[2] = TabSession(tab_id=2, domain="fresh.com", url="https://fresh.com/")
    h.store.domain_index.update({"example.com": 1, "fresh.com": 2})

    evicted = janitor.sweep()

    assert evicted == 2
    assert list(h.store.analyses) == [2]
    assert list(h.store.sessions) == [2]
    assert h.store.domain_index == {"fresh.com": 2}


def test_sweep_cancels_dangling_watchdogs():
    async def main():
        h = Harness()
        janitor = CacheJanitor(h.store, h.sink)
        orphan = asyncio.create_task(asyncio.sleep(60))
        h.store.watchdogs[9] = orphan
        janitor.sweep()
        await asyncio.sleep(0)
        return h, orphan

    h, orphan = asyncio.run(main())
    assert orphan.cancelled()
    assert h.store.watchdogs == {}


def test_janitor_loop_runs_periodically():
    async def main():
        h = Harness()
        h.store.analyses[1] = _analysis(age=timedelta(days=2))
        janitor = CacheJanitor(h.store, h.sink, interval_s=0.01)
        janitor.start()
        await asyncio.sleep(0.05)
        await janitor.stop()
        return h

    assert asyncio.run(main()).store.analyses == {}


def test_credential_change_clears_all_analyses():
    h = Harness()
    SettingsReactor(h.settings, h.store, h.orchestrator, h.sink)
    h.store.analyses[1] = _analysis()
    h.store.analyses[2] = _analysis(domain="other.org")

    h.settings.update(credential="sk-new")

    assert h.store.analyses == {}
    assert h.sink.badge(1) == "none"


def test_auto_analyze_off_clears_badges_but_keeps_results():
    h = Harness()
    SettingsReactor(h.settings, h.store, h.orchestrator, h.sink)
    h.store.analyses[1] = _analysis()
    h.sink.set_badge(1, "low")

    h.settings.update(auto_analyze=False)

    assert h.sink.badge(1) == "none"
    assert 1 in h.store.analyses


def test_auto_analyze_on_rediscovers_active_tab_only():
    h = Harness(racer=FakeRacer({"terms": TERMS}))
    h.settings.update(auto_analyze=False)
    SettingsReactor(h.settings, h.store, h.orchestrator, h.sink)

    async def main():
        h.orchestrator.handle_navigation(1, "https://other.org/")
        h.orchestrator.handle_activated(2, URL)
        h.settings.update(auto_analyze=True)
        await h.orchestrator.drain()

    asyncio.run(main())
    assert h.orchestrator.get_analysis(2).domain == "example.com"
    assert h.orchestrator.get_analysis(1) is None
    assert [doc_type for doc_type, _ in h.racer.calls] == ["terms", "privacy"]


def test_auto_analyze_on_follows_where_the_active_tab_navigated():
    h = Harness(racer=FakeRacer({"terms": TERMS}))
    h.settings.update(auto_analyze=False)
    SettingsReactor(h.settings, h.store, h.orchestrator, h.sink)

    async def main():
        h.orchestrator.handle_activated(1, "https://a.com/")
        h.orchestrator.handle_navigation(1, "https://b.com/pricing")
        h.settings.update(auto_analyze=True)
        await h.orchestrator.drain()

    asyncio.run(main())
    assert h.orchestrator.active_url == "https://b.com/pricing"
    assert h.orchestrator.get_analysis(1).domain == "b.com"
