"""
Tests for graph assembly: resolution, coalescing, classification, determinism.
"""

from models.identity import Identity
from models.registry_package import RegistryPackage
from models.repository import LocalRepository
from services.graph_builder import GraphBuilder, workspace_fingerprint

ACME = Identity(id="acme", username="acme-corp", scopes=["@acme"])


def repo(path, name, deps=None, dev=None, **fields):
    return LocalRepository(
        path=f"/work/{path}",
        manifest_name=name,
        manifest_version=fields.pop("version", "1.0.0"),
        declared_dependencies=deps or {},
        declared_dev_dependencies=dev or {},
        **fields,
    )


def package(name, version="1.0.0", deps=None):
    return RegistryPackage(
        name=name,
        scope=name.split("/", 1)[0],
        latest_version=version,
        declared_dependencies=deps or {},
    )


def edge_tuples(edges):
    return [(e.from_, e.to, e.kind, e.resolution) for e in edges]


class TestResolution:
    def test_local_to_local(self):
        pkg_a = repo("pkgA", "@acme/a", deps={"@acme/b": "^1"})
        pkg_b = repo("pkgB", "@acme/b")

        graph, warnings = GraphBuilder().build([pkg_a, pkg_b], [], [ACME])

        assert [r.manifest_name for r in graph.repositories] == ["@acme/a", "@acme/b"]
        assert graph.npm_packages == []
        assert edge_tuples(graph.interdependencies) == [
            ("local:/work/pkgA", "local:/work/pkgB", "runtime", "local"),
        ]
        assert graph.cross_dependencies == []
        assert warnings == []

    def test_local_to_registry(self):
        pkg_a = repo("pkgA", "@acme/a", deps={"@acme/b": "^1"})

        graph, warnings = GraphBuilder().build([pkg_a], [package("@acme/b", "1.2.3")], [ACME])

        assert [r.manifest_name for r in graph.repositories] == ["@acme/a"]
        assert [(p.name, p.scope, p.latest_version) for p in graph.npm_packages] == [
            ("@acme/b", "@acme", "1.2.3"),
        ]
        assert edge_tuples(graph.cross_dependencies) == [
            ("local:/work/pkgA", "registry:@acme/b", "runtime", "registry"),
        ]
        assert graph.interdependencies == []
        assert warnings == []

    def test_unresolved(self):
        pkg_a = repo("pkgA", "@acme/a", deps={"@acme/b": "^1"})

        graph, warnings = GraphBuilder().build([pkg_a], [], [ACME])

        assert graph.npm_packages == []
        assert graph.interdependencies == []
        assert graph.cross_dependencies == []
        assert edge_tuples(graph.unresolved_dependencies) == [
            ("local:/work/pkgA", "registry:@acme/b", "runtime", "unresolved"),
        ]
        assert [(w.kind, w.subject) for w in warnings] == [("unresolved", "@acme/b")]


    def test_unresolved_runtime_and_dev_warn_once(self):
        pkg_a = repo("pkgA", "@acme/a", deps={"@acme/b": "^1"}, dev={"@acme/b": "^2"})

        graph, warnings = GraphBuilder().build([pkg_a], [], [ACME])

        assert edge_tuples(graph.unresolved_dependencies) == [
            ("local:/work/pkgA", "registry:@acme/b", "runtime", "unresolved"),
        ]
        assert [(w.kind, w.subject) for w in warnings] == [("unresolved", "@acme/b")]
        assert "@acme/b@^1" in warnings[0].message


class TestEdgeDerivation:
    def test_external_dependencies_are_dropped(self):
        app = repo("app", "app", deps={"lodash": "^4", "@other/x": "1"}, dev={"vitest": "^3"})

        graph, warnings = GraphBuilder().build([app], [], [ACME])

        assert graph.interdependencies == graph.cross_dependencies == graph.unresolved_dependencies == []
        assert warnings == []

    def test_local_match_wins_over_registry(self):
        a = repo("a", "@acme/a", deps={"@acme/b": "^1"})
        b = repo("b", "@acme/b")

        graph, _ = GraphBuilder().build([a, b], [package("@acme/b")], [ACME])

        assert edge_tuples(graph.interdependencies) == [("local:/work/a", "local:/work/b", "runtime", "local")]
        assert graph.cross_dependencies == []

    def test_registry_package_outside_configured_scopes_not_linked(self):
        a = repo("a", "a", deps={"@other/b": "^1"})

        graph, _ = GraphBuilder().build([a], [package("@other/b")], [ACME])

        assert graph.cross_dependencies == []
        assert [p.name for p in graph.npm_packages] == ["@other/b"]

    def test_runtime_wins_over_dev(self):
        a = repo("a", "@acme/a", deps={"@acme/b": "^1"}, dev={"@acme/b": "^2"})
        c = repo("c", "@acme/c", dev={"@acme/b": "^1"})
        b = repo("b", "@acme/b")

        graph, _ = GraphBuilder().build([a, b, c], [], [ACME])

        assert edge_tuples(graph.interdependencies) == [
            ("local:/work/a", "local:/work/b", "runtime", "local"),
            ("local:/work/c", "local:/work/b", "dev", "local"),
        ]
        assert graph.interdependencies[0].constraint == "^1"

    def test_registry_to_local_reverse_edge_is_cross(self):
        core = repo("core", "@acme/core")

        graph, _ = GraphBuilder().build([core], [package("@acme/plugin", deps={"@acme/core": "^2"})], [ACME])

        assert edge_tuples(graph.cross_dependencies) == [
            ("registry:@acme/plugin", "local:/work/core", "runtime", "local"),
        ]

    def test_cycles_are_preserved(self):
        a = repo("a", "@acme/a", deps={"@acme/b": "^1"})
        b = repo("b", "@acme/b", deps={"@acme/a": "^1"})

        graph, _ = GraphBuilder().build([a, b], [], [ACME])

        assert len(graph.interdependencies) == 2


class TestIdentityAndScopes:
    def test_scope_match_assigns_identity(self):
        a = repo("a", "@acme/a")
        tool = repo("tool", "tool")

        graph, _ = GraphBuilder().build([a, tool], [], [ACME])

        owners = {r.manifest_name: r.identity_id for r in graph.repositories}
        assert owners == {"@acme/a": "acme", "tool": None}
        assert a.identity_id is None

    def test_scope_counts_match_packages(self):
        packages = [package("@acme/b"), package("@acme/c"), package("@beta/x")]
        beta = Identity(id="beta", username="beta-org", scopes=["@beta"])

        graph, _ = GraphBuilder().build([], packages, [ACME, beta])

        assert [(s.name, s.identity_id, s.package_count) for s in graph.npm_scopes] == [
            ("@acme", "acme", 2),
            ("@beta", "beta", 1),
        ]
        assert graph.npm_organizations == {"@acme": ["@acme/b", "@acme/c"], "@beta": ["@beta/x"]}

    def test_empty_scope_kept_only_when_referenced(self):
        ghost = Identity(id="ghost", username="ghost", scopes=["@ghost"])
        idle = Identity(id="idle", username="idle", scopes=["@idle"])
        app = repo("app", "app", dev={"@ghost/ui": "^1"})

        graph, _ = GraphBuilder().build([app], [], [ghost, idle])

        assert [(s.name, s.package_count) for s in graph.npm_scopes] == [("@ghost", 0)]

    def test_duplicate_manifest_names_keep_first(self):
        first = repo("a-first", "@acme/a")
        second = repo("b-second", "@acme/a")

        graph, warnings = GraphBuilder().build([first, second], [], [ACME])

        assert [r.path for r in graph.repositories] == ["/work/a-first"]
        assert [(w.kind, w.subject) for w in warnings] == [("scan", "/work/b-second")]

    def test_organizations_group_local_scopes(self):
        graph, _ = GraphBuilder().build(
            [repo("b", "@acme/b"), repo("a", "@acme/a"), repo("t", "tool")], [], [ACME]
        )

        assert graph.organizations == {"@acme": ["@acme/a", "@acme/b"]}


class TestInvariants:
    def build_sample(self, order=1):
        repos = [
            repo("a", "@acme/a", deps={"@acme/b": "^1", "@acme/missing": "^1", "react": "^18"}),
            repo("b", "@acme/b", dev={"@acme/c": "^2"}),
            repo("d", "@acme/d", deps={"@acme/a": "^1"}, dev={"@acme/a": "^1"}),
        ]
        packages = [package("@acme/c", deps={"@acme/b": "^1"}), package("@acme/e")]
        return GraphBuilder().build(repos[::order], packages[::order], [ACME])

    def test_deterministic_serialization(self):
        first, _ = self.build_sample()
        second, _ = self.build_sample(order=-1)

        assert first.to_json() == second.to_json()

    def test_edges_reference_known_nodes(self):
        graph, _ = self.build_sample()
        nodes = {r.node_id for r in graph.repositories} | {p.node_id for p in graph.npm_packages}

        for edge in graph.interdependencies + graph.cross_dependencies:
            assert edge.from_ in nodes
            assert edge.to in nodes
        for edge in graph.unresolved_dependencies:
            assert edge.from_ in nodes

    def test_buckets_disjoint_and_coalesced(self):
        graph, _ = self.build_sample()
        all_edges = graph.interdependencies + graph.cross_dependencies + graph.unresolved_dependencies
        pairs = [(e.from_, e.to) for e in all_edges]

        assert len(pairs) == len(set(pairs))
        assert all(e.is_interdependency for e in graph.interdependencies)
        assert not any(e.is_interdependency for e in graph.cross_dependencies)

    def test_edges_sorted(self):
        graph, _ = self.build_sample()
        for bucket in (graph.interdependencies, graph.cross_dependencies):
            assert bucket == sorted(bucket, key=lambda e: e.sort_key())

    def test_summary_counts(self):
        graph, _ = self.build_sample()
        summary = graph.summary().model_dump(by_alias=True)

        assert summary == {
            "localRepositories": 3,
            "npmPackages": 2,
            "npmScopes": 1,
            "interdependencies": 2,
            "crossDependencies": 2,
        }

    def test_empty_inputs(self):
        graph, warnings = GraphBuilder().build([], [], [ACME])

        assert graph.repositories == graph.npm_packages == graph.npm_scopes == []
        assert graph.interdependencies == graph.cross_dependencies == []
        assert warnings == []


class TestWorkspaceFingerprint:
    def test_stable_under_reordering(self):
        a, b = repo("a", "a"), repo("b", "b")
        assert workspace_fingerprint([a, b], ["@x", "@y"]) == workspace_fingerprint([b, a], ["@y", "@x"])

    def test_changes_with_dependencies_and_scopes(self):
        base = workspace_fingerprint([repo("a", "a")], ["@acme"])

        assert workspace_fingerprint([repo("a", "a", deps={"@acme/c": "^1"})], ["@acme"]) != base
        assert workspace_fingerprint([repo("a", "a", version="2.0.0")], ["@acme"]) != base
        assert workspace_fingerprint([repo("a", "a")], ["@acme", "@beta"]) != base
