import pytest

from wls_automation.operations.group import GroupInfo, GroupManager, GroupOperation
from wls_automation.types import HostConfig


class FakeManager(GroupManager):
    def __init__(self, existing: GroupInfo | None = None):
        self._info = existing
        self.actions: list[tuple[str, tuple]] = []

    def get(self, name: str):  # type: ignore[override]
        return self._info

    def add(self, executor, name, *, gid, system):  # type: ignore[override]
        self.actions.append(("add", (name, gid, system)))
        self._info = GroupInfo(name=name, gid=gid or 1001)

    def set_gid(self, executor, name, gid):  # type: ignore[override]
        self.actions.append(("gid", (name, gid)))
        self._info = GroupInfo(name=name, gid=gid)

    def delete(self, executor, name):  # type: ignore[override]
        self.actions.append(("delete", (name,)))
        self._info = None


def test_creates_missing_group():
    op = GroupOperation({"name": "oinstall"})
    fake = FakeManager()
    op.manager = fake

    result = op.apply(HostConfig("local"), executor=None)

    assert result.changed is True
    assert result.details == "created"
    assert fake.actions == [("add", ("oinstall", None, False))]


def test_rerun_is_noop():
    op = GroupOperation({"name": "oinstall", "state": "present"})
    fake = FakeManager()
    op.manager = fake

    first = op.apply(HostConfig("local"), executor=None)
    second = op.apply(HostConfig("local"), executor=None)

    assert first.changed is True
    assert second.changed is False
    assert second.details == "noop"
    assert len(fake.actions) == 1


def test_corrects_gid():
    op = GroupOperation({"name": "oinstall", "gid": 54321})
    fake = FakeManager(GroupInfo(name="oinstall", gid=1001))
    op.manager = fake

    result = op.apply(HostConfig("local"), executor=None)

    assert result.changed is True
    assert ("gid", ("oinstall", 54321)) in fake.actions


def test_removes_group():
    op = GroupOperation({"name": "oinstall", "state": "absent"})
    fake = FakeManager(GroupInfo(name="oinstall", gid=1001))
    op.manager = fake

    result = op.apply(HostConfig("local"), executor=None)

    assert result.details == "removed"
    assert fake.actions == [("delete", ("oinstall",))]


def test_rejects_bad_state():
    with pytest.raises(ValueError):
        GroupOperation({"name": "oinstall", "state": "latest"})


def test_manager_reports_existing_root_group():
    info = GroupManager().get("root")
    assert info is not None
    assert info.gid == 0
