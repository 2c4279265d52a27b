import threading

from pyautopilot.events.store import EventStore, list_runs
from pyautopilot.gateway import PermissionOutcome, PrivilegedGateway
from pyautopilot.scanner import AppSnapshot
from pyautopilot.skills.models import Skill, Step
from pyautopilot.skills.registry import SkillRegistry
from pyautopilot.tools.base import ToolSpec
from pyautopilot.tools.registry import ToolRegistry

from conftest import StubProvider


def test_append_and_read_back(tmp_path):
    es = EventStore.open("run1", directory=tmp_path)
    es.append("tool.dispatch", {"tool": "tap", "ok": True})
    es.append("skill.report", {"skill": "go_home", "ok": False})
    evs = list(es.iter_events())
    assert [e.type for e in evs] == ["tool.dispatch", "skill.report"]
    assert evs[0].data == {"tool": "tap", "ok": True}
    assert list_runs(tmp_path) == ["run1"]


def test_corrupt_lines_are_skipped(tmp_path):
    es = EventStore.open("run2", directory=tmp_path)
    es.append("a", {})
    with es.path.open("a", encoding="utf-8") as f:
        f.write("{truncated\n\n")
    es.append("b", {"n": 1})
    assert [e.type for e in es.iter_events()] == ["a", "b"]


def test_missing_run_is_empty(tmp_path):
    assert list(EventStore.open("nothing", directory=tmp_path).iter_events()) == []


def test_concurrent_appends_stay_line_delimited(tmp_path):
    es = EventStore.open("run3", directory=tmp_path)

    def worker():
        for i in range(50):
            es.append("tick", {"i": i, "pad": "x" * 200})

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(list(es.iter_events())) == 200


def test_tool_registry_writes_to_store(tmp_path):
    es = EventStore.open("run4", directory=tmp_path)
    ToolRegistry(journal=es).dispatch("missing", {"a": 1})
    (ev,) = es.iter_events()
    assert ev.type == "tool.dispatch"
    assert ev.data["args"] == {"a": 1}
    assert ev.data["error"]["code"] == "unknown_tool"


class FullDiskJournal:
    def __init__(self):
        self.attempts = 0

    def append(self, event_type, data):
        self.attempts += 1
        raise OSError(28, "No space left on device")


class NoopTool:
    spec = ToolSpec(name="noop", description="")

    def execute(self, ctx, args):
        return "done"


def test_journal_failure_does_not_break_dispatch():
    journal = FullDiskJournal()
    reg = ToolRegistry(journal=journal)
    reg.register(NoopTool())
    res = reg.dispatch("noop", {})
    assert res.ok and res.payload == "done"
    assert journal.attempts == 1


def test_journal_failure_does_not_abort_skill():
    journal = FullDiskJournal()
    tools = ToolRegistry(journal=journal)
    tools.register(NoopTool())
    skills = SkillRegistry(tools, journal=journal)
    skills.register(Skill("twice", "", steps=(Step("noop"), Step("noop"))))
    report = skills.execute("twice", {}, AppSnapshot.of([]))
    assert report.ok
    assert len(report.outcomes) == 2
    assert journal.attempts == 3


def test_journal_failure_still_resolves_permission_request():
    provider = StubProvider()
    gw = PrivilegedGateway(provider, journal=FullDiskJournal())
    try:
        gw.connect()
        req = gw.request_permission()
        provider.transport.send_permission_result(req.request_code, granted=True)
        assert req.wait(2) == PermissionOutcome.GRANTED
        assert gw.is_authorized()
    finally:
        gw.teardown()
