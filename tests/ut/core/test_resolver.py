"""VersionResolver 单元测试"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from componentmgr.core.exceptions import ComponentManagerError, ErrorKind
from componentmgr.core.lockfile import LockFile
from componentmgr.core.models import (
    Component,
    ComponentSpecification,
    ComponentVersion,
    GitSource,
    Maturity,
)
from componentmgr.core.repository import GitPackageRepository, StashPackageRepository
from componentmgr.core.repository.base import PackageRepository
from componentmgr.core.resolver import VersionResolver, select_version


class StaticRepository(PackageRepository):
    """返回固定版本列表，约束需与 release 相等或为空"""

    type_id = "static"
    display_name = "Static"

    def __init__(self, repository_id, versions):
        super().__init__(repository_id)
        self.versions = tuple(versions)
        self.calls = 0

    def get_component(self, spec):
        self.calls += 1
        return Component(spec.name, self.versions, self)

    def satisfies_version(self, constraint, version):
        return constraint in ("", version.release)


def _v(version, release, maturity):
    return ComponentVersion(version, release, maturity)


class TestSelectVersion:
    def test_maturity_beats_version_number(self) -> None:
        chosen = select_version([
            _v(3, "3.0-beta", Maturity.BETA),
            _v(2, "2.0", Maturity.STABLE),
        ])
        assert chosen.release == "2.0"

    def test_version_breaks_maturity_tie(self) -> None:
        chosen = select_version([
            _v(1, "1.0", Maturity.STABLE),
            _v(2, "2.0", Maturity.STABLE),
        ])
        assert chosen.release == "2.0"

    def test_unknown_values_rank_lowest(self) -> None:
        chosen = select_version([
            _v(None, "x", None),
            _v(1, "1.0-alpha", Maturity.ALPHA),
        ])
        assert chosen.release == "1.0-alpha"

    def test_full_tie_keeps_first_declared(self) -> None:
        first = _v(None, "a", None)
        second = _v(None, "b", None)
        assert select_version([first, second]) is first

    def test_empty(self) -> None:
        assert select_version([]) is None


class TestResolve:
    def test_first_repository_with_match_wins(self) -> None:
        git = GitPackageRepository("git")
        moodle = MagicMock(spec=PackageRepository)
        spec = ComponentSpecification(
            "mod_forum", "v1.0", ("git", "moodle"), {"uri": "https://e.com/forum.git"},
        )
        resolved = VersionResolver({"git": git, "moodle": moodle}).resolve(spec)
        assert resolved.repository_id == "git"
        assert resolved.version.sources == (GitSource("https://e.com/forum.git", "v1.0"),)
        moodle.get_component.assert_not_called()

    def test_falls_through_to_next_repository(self) -> None:
        empty = StaticRepository("a", [])
        full = StaticRepository("b", [_v(1, "1.0", Maturity.STABLE)])
        spec = ComponentSpecification("mod_x", "", ("a", "b"))
        resolved = VersionResolver({"a": empty, "b": full}).resolve(spec)
        assert resolved.repository_id == "b"
        assert empty.calls == 1

    def test_picks_within_first_repository_only(self) -> None:
        a = StaticRepository("a", [_v(1, "1.0", Maturity.BETA)])
        b = StaticRepository("b", [_v(9, "9.0", Maturity.STABLE)])
        spec = ComponentSpecification("mod_x", "", ("a", "b"))
        resolved = VersionResolver({"a": a, "b": b}).resolve(spec)
        assert resolved.version.release == "1.0"
        assert b.calls == 0

    def test_no_satisfying_version(self) -> None:
        a = StaticRepository("a", [_v(1, "1.0", Maturity.STABLE)])
        spec = ComponentSpecification("mod_x", "2.0", ("a",))
        with pytest.raises(ComponentManagerError) as exc:
            VersionResolver({"a": a}).resolve(spec)
        assert exc.value.kind is ErrorKind.RESOLUTION
        assert exc.value.code == "no-satisfying-version"
        assert exc.value.context["component"] == "mod_x"
        assert exc.value.context["constraint"] == "2.0"

    def test_unknown_repository(self) -> None:
        spec = ComponentSpecification("mod_x", "", ("ghost",))
        with pytest.raises(ComponentManagerError, match="unknown-repository"):
            VersionResolver({}).resolve(spec)

    def test_resolve_all_fails_fast(self) -> None:
        a = StaticRepository("a", [_v(1, "1.0", Maturity.STABLE)])
        specs = [
            ComponentSpecification("mod_ok", "", ("a",)),
            ComponentSpecification("mod_bad", "nope", ("a",)),
        ]
        with pytest.raises(ComponentManagerError, match="mod_bad"):
            VersionResolver({"a": a}).resolve_all(specs)

    @pytest.mark.parametrize("workers", [1, 4])
    def test_resolve_all_keeps_declaration_order(self, workers) -> None:
        a = StaticRepository("a", [_v(1, "1.0", Maturity.STABLE)])
        names = [f"local_c{i}" for i in range(8)]
        specs = [ComponentSpecification(n, "", ("a",)) for n in names]
        result = VersionResolver({"a": a}).resolve_all(specs, workers=workers)
        assert list(result) == names

    def test_duplicate_names_rejected(self) -> None:
        specs = [ComponentSpecification("mod_x", "", ("a",))] * 2
        with pytest.raises(ComponentManagerError, match="project-invalid"):
            VersionResolver({}).resolve_all(specs)


class TestStashScenario:
    """Stash 缓存中的 quiz 组件有 v1.0 / v1.1 两个标签"""

    @pytest.fixture()
    def stash(self, tmp_path, make_http):
        repo = StashPackageRepository(
            "stash", {"uri": "https://stash.example.com", "project": "MDL"},
            cache_dir=tmp_path, http=make_http(),
        )
        repo.cache.replace({"quiz": {
            "slug": "quiz",
            "links": {"clone": [{"href": "https://stash.example.com/scm/mdl/quiz.git"}]},
            "tags": [{"displayId": "v1.0"}, {"displayId": "v1.1"}],
        }})
        return repo

    def test_exact_tag_resolves(self, stash) -> None:
        spec = ComponentSpecification("quiz", "v1.1", ("stash",))
        resolved = VersionResolver({"stash": stash}).resolve(spec)
        assert resolved.version.release == "v1.1"
        assert resolved.version.sources == (
            GitSource("https://stash.example.com/scm/mdl/quiz.git", "v1.1"),
        )

    def test_missing_tag_fails(self, stash) -> None:
        spec = ComponentSpecification("quiz", "v2.0", ("stash",))
        with pytest.raises(ComponentManagerError) as exc:
            VersionResolver({"stash": stash}).resolve(spec)
        assert exc.value.code == "no-satisfying-version"


class TestLockReuse:
    def test_locked_entry_skips_repositories(self, tmp_path) -> None:
        a = StaticRepository("a", [_v(2, "2.0", Maturity.STABLE)])
        spec = ComponentSpecification("mod_x", "", ("a",))
        resolved = VersionResolver({"a": a}).resolve_all([spec])

        lock = LockFile(tmp_path / "lock.yml")
        lock.commit(resolved)
        reloaded = LockFile(tmp_path / "lock.yml").load()
        again = VersionResolver({"a": a}, lock_file=reloaded).resolve(spec)
        assert a.calls == 1
        assert again.version == resolved["mod_x"].version

    def test_changed_constraint_requeries(self, tmp_path) -> None:
        a = StaticRepository("a", [_v(2, "2.0", Maturity.STABLE)])
        lock = LockFile(tmp_path / "lock.yml")
        lock.commit(VersionResolver({"a": a}).resolve_all(
            [ComponentSpecification("mod_x", "", ("a",))],
        ))
        VersionResolver({"a": a}, lock_file=lock).resolve(
            ComponentSpecification("mod_x", "2.0", ("a",)),
        )
        assert a.calls == 2
