"""Tests for the import graph and its incremental updates."""

from routegraph.graph import ImportGraphBuilder
from routegraph.models import ImportEdge


class TestBuild:
    """Full builds."""

    def test_forward_and_reverse_adjacency(self, builder: ImportGraphBuilder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./Mid"),
            make_fact("src/Mid.tsx", "./Changed"),
            make_fact("src/Changed.ts"),
        ])
        assert graph.nodes == ("src/Changed.ts", "src/Mid.tsx", "src/Router.tsx")
        assert graph.imports_of("src/Router.tsx") == [
            ImportEdge("src/Router.tsx", "src/Mid.tsx", "static"),
        ]
        assert graph.imported_by("src/Changed.ts") == [
            ImportEdge("src/Mid.tsx", "src/Changed.ts", "static"),
        ]

    def test_unresolved_imports_have_no_edges(self, builder, make_fact):
        graph = builder.build([make_fact("src/App.tsx", "react", "./Missing")])
        assert graph.imports_of("src/App.tsx") == []
        assert "src/App.tsx" in graph
        assert graph.edge_count == 0

    def test_duplicate_edges_collapse_static_wins(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", ("./Page", "deferred"), "./Page"),
            make_fact("src/Lazy.tsx", ("./Page", "deferred"), ("./Page", "deferred")),
            make_fact("src/Page.tsx"),
        ])
        assert graph.edge_kind("src/Router.tsx", "src/Page.tsx") == "static"
        assert graph.edge_kind("src/Lazy.tsx", "src/Page.tsx") == "deferred"
        assert len(graph.imported_by("src/Page.tsx")) == 2

    def test_self_import_is_dropped(self, builder, make_fact):
        graph = builder.build([make_fact("src/A.ts", "./A")])
        assert graph.imports_of("src/A.ts") == []

    def test_failed_file_is_isolated_node(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Broken.tsx", "./Leaf", failed=True),
            make_fact("src/Leaf.ts"),
        ])
        assert "src/Broken.tsx" in graph
        assert graph.imports_of("src/Broken.tsx") == []
        assert graph.imported_by("src/Leaf.ts") == []

    def test_failed_file_has_no_incoming_edges(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./Broken", "./Page"),
            make_fact("src/Broken.tsx", failed=True),
            make_fact("src/Page.tsx"),
        ])
        assert graph.is_failed("src/Broken.tsx")
        assert graph.imported_by("src/Broken.tsx") == []
        assert [e.to_path for e in graph.imports_of("src/Router.tsx")] == ["src/Page.tsx"]

    def test_ambiguity_warnings(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/App.tsx", "./Button"),
            make_fact("src/Button.tsx"),
            make_fact("src/Button.js"),
        ])
        warnings = graph.warnings(["src/App.tsx"])
        assert len(warnings) == 1
        assert warnings[0].chosen == "src/Button.tsx"

    def test_resolve_exposes_resolver(self, builder, make_fact):
        graph = builder.build([make_fact("src/App.tsx"), make_fact("src/pages/Home.tsx")])
        assert graph.resolve("src/App.tsx", "./pages/Home") == "src/pages/Home.tsx"
        assert graph.resolve("src/App.tsx", "./App") is None


class TestIncremental:
    """update() must agree with a full rebuild over the same facts."""

    def test_modified_file_replaces_edges(self, builder, make_fact):
        before = [make_fact("src/A.ts", "./B"), make_fact("src/B.ts"), make_fact("src/C.ts")]
        graph = builder.build(before)
        changed = make_fact("src/A.ts", "./C")
        updated = builder.update(graph, [changed])

        assert updated == builder.build([changed, before[1], before[2]])
        assert updated.imported_by("src/B.ts") == []
        # the original snapshot is untouched
        assert graph.imports_of("src/A.ts")[0].to_path == "src/B.ts"

    def test_added_file_changes_resolution_of_importers(self, builder, make_fact):
        # ./Button resolved to Button.js until Button.tsx appears
        facts = [make_fact("src/App.tsx", "./Button"), make_fact("src/Button.js")]
        graph = builder.build(facts)
        assert graph.imports_of("src/App.tsx")[0].to_path == "src/Button.js"

        added = make_fact("src/Button.tsx")
        updated = builder.update(graph, [added])
        assert updated.imports_of("src/App.tsx")[0].to_path == "src/Button.tsx"
        assert "src/App.tsx" in updated.touched
        assert updated == builder.build(facts + [added])

    def test_added_file_satisfies_dangling_import(self, builder, make_fact):
        graph = builder.build([make_fact("src/App.tsx", "./pages/New")])
        updated = builder.update(graph, [make_fact("src/pages/New/index.tsx")])
        assert updated.imports_of("src/App.tsx")[0].to_path == "src/pages/New/index.tsx"

    def test_removed_file_prunes_edges(self, builder, make_fact):
        facts = [
            make_fact("src/Router.tsx", "./Page", "./Util"),
            make_fact("src/Page.tsx", "./Util"),
            make_fact("src/Util.ts"),
        ]
        graph = builder.build(facts)
        updated = builder.update(graph, removed=["src/Util.ts"])

        assert "src/Util.ts" not in updated
        assert updated.imported_by("src/Util.ts") == []
        for edge in updated.edges():
            assert edge.from_path in updated and edge.to_path in updated
        assert updated == builder.build(facts[:2])

    def test_case_insensitive_target_removed(self, builder, make_fact):
        facts = [make_fact("src/App.tsx", "./button"), make_fact("src/Button.tsx")]
        graph = builder.build(facts)
        assert graph.imports_of("src/App.tsx")[0].to_path == "src/Button.tsx"
        updated = builder.update(graph, removed=["src/Button.tsx"])
        assert updated.imports_of("src/App.tsx") == []
        assert updated.warnings() == []

    def test_importers_follow_failed_status(self, builder, make_fact):
        router = make_fact("src/Router.tsx", "./Page")
        graph = builder.build([router, make_fact("src/Page.tsx")])
        assert graph.imported_by("src/Page.tsx")

        broken = builder.update(graph, [make_fact("src/Page.tsx", failed=True)])
        assert broken.imported_by("src/Page.tsx") == []
        assert "src/Router.tsx" in broken.touched
        assert broken == builder.build([router, make_fact("src/Page.tsx", failed=True)])

        fixed = builder.update(broken, [make_fact("src/Page.tsx")])
        assert fixed.imported_by("src/Page.tsx") == [
            ImportEdge("src/Router.tsx", "src/Page.tsx", "static"),
        ]
        assert fixed == graph

    def test_sequence_of_updates_matches_full_build(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/main.tsx", "./router"),
            make_fact("src/router.tsx", "./pages/Home", ("./pages/Lazy", "deferred")),
            make_fact("src/pages/Home.tsx", "../utils/format"),
            make_fact("src/utils/format.ts"),
        ])
        graph = builder.update(graph, [make_fact("src/pages/Lazy.tsx", "../utils/format")])
        graph = builder.update(graph, removed=["src/pages/Home.tsx"])
        graph = builder.update(graph, [make_fact("src/pages/Home.ts", "../utils/format")])

        expected = builder.build([
            make_fact("src/main.tsx", "./router"),
            make_fact("src/router.tsx", "./pages/Home", ("./pages/Lazy", "deferred")),
            make_fact("src/pages/Lazy.tsx", "../utils/format"),
            make_fact("src/pages/Home.ts", "../utils/format"),
            make_fact("src/utils/format.ts"),
        ])
        assert graph == expected
        assert graph.edge_kind("src/router.tsx", "src/pages/Home.ts") == "static"
        assert graph.edge_kind("src/router.tsx", "src/pages/Lazy.tsx") == "deferred"
