"""Tests for reverse-reachability impact propagation."""

import pytest

from routegraph.impact import ImpactPropagator, propagate
from routegraph.models import RouteRecord, UnresolvedRoutePath


def _route(path, defining, component=None, line=1, kind="route-table"):
    return RouteRecord(
        route_path=path,
        defining_file=defining,
        component_file=component or defining,
        declaration_kind=kind,
        line=line,
    )


@pytest.fixture
def chain_graph(builder, make_fact):
    """Router -> Mid -> Changed, route /a rendered by Mid."""
    graph = builder.build([
        make_fact("src/Router.tsx", "./Mid"),
        make_fact("src/Mid.tsx", "./Changed"),
        make_fact("src/Changed.ts"),
    ])
    routes = [_route("/a", "src/Router.tsx", "src/Mid.tsx")]
    return graph, routes


class TestReachability:
    """Hit rules and reachability kinds."""

    def test_transitive_static_chain(self, chain_graph):
        graph, routes = chain_graph
        result = propagate(["src/Changed.ts"], graph, routes)

        impacts = result.impacts["src/Changed.ts"]
        assert len(impacts) == 1
        assert impacts[0].route.route_path == "/a"
        assert impacts[0].reachability == "via-static-import"
        assert impacts[0].causal_chain == ["src/Changed.ts", "src/Mid.tsx", "src/Router.tsx"]
        assert result.unresolved == []

    def test_defining_file_change_is_direct(self, chain_graph):
        graph, routes = chain_graph
        result = propagate(["src/Router.tsx"], graph, routes)
        impact = result.impacts["src/Router.tsx"][0]
        assert impact.reachability == "direct"
        assert impact.causal_chain == []

    def test_component_file_change(self, chain_graph):
        graph, routes = chain_graph
        impact = propagate(["src/Mid.tsx"], graph, routes).impacts["src/Mid.tsx"][0]
        assert impact.causal_chain == ["src/Mid.tsx", "src/Router.tsx"]

    def test_lazy_edge_gives_deferred_reachability(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", ("./Page", "deferred")),
            make_fact("src/Page.tsx", "./Util"),
            make_fact("src/Util.ts"),
        ])
        routes = [_route("/p", "src/Router.tsx", "src/Page.tsx")]
        impact = propagate(["src/Util.ts"], graph, routes).impacts["src/Util.ts"][0]
        assert impact.reachability == "via-deferred-import"
        assert impact.causal_chain == ["src/Util.ts", "src/Page.tsx", "src/Router.tsx"]

    def test_static_beats_deferred_and_keeps_both_chains(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./Page", ("./Lazy", "deferred")),
            make_fact("src/Page.tsx", "./Util"),
            make_fact("src/Lazy.tsx", "./Util"),
            make_fact("src/Util.ts"),
        ])
        routes = [_route("/p", "src/Router.tsx", "src/Page.tsx")]
        impacts = propagate(["src/Util.ts"], graph, routes).impacts["src/Util.ts"]

        assert len(impacts) == 1
        assert impacts[0].reachability == "via-static-import"
        assert impacts[0].causal_chain == ["src/Util.ts", "src/Page.tsx", "src/Router.tsx"]
        assert impacts[0].alternate_chains == [["src/Util.ts", "src/Lazy.tsx", "src/Router.tsx"]]

    def test_helper_import_hits_every_route_of_the_file(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./A", "./B", "./guard"),
            make_fact("src/A.tsx"),
            make_fact("src/B.tsx"),
            make_fact("src/guard.ts"),
        ])
        routes = [
            _route("/a", "src/Router.tsx", "src/A.tsx", line=3),
            _route("/b", "src/Router.tsx", "src/B.tsx", line=4),
        ]
        impacts = propagate(["src/guard.ts"], graph, routes).impacts["src/guard.ts"]
        assert [i.route.route_path for i in impacts] == ["/a", "/b"]
        assert all(i.causal_chain == ["src/guard.ts", "src/Router.tsx"] for i in impacts)

    def test_sibling_component_does_not_hit_other_routes(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./A", "./B"),
            make_fact("src/A.tsx"),
            make_fact("src/B.tsx"),
        ])
        routes = [
            _route("/a", "src/Router.tsx", "src/A.tsx"),
            _route("/b", "src/Router.tsx", "src/B.tsx"),
        ]
        result = propagate(["src/A.tsx"], graph, routes)
        assert result.affected_routes == ["/a"]

    def test_inline_route_hit_when_defining_file_reached(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/app/page.tsx", "../lib/data"),
            make_fact("src/lib/data.ts"),
        ])
        routes = [_route("/", "src/app/page.tsx", kind="file-system")]
        impact = propagate(["src/lib/data.ts"], graph, routes).impacts["src/lib/data.ts"][0]
        assert impact.causal_chain == ["src/lib/data.ts", "src/app/page.tsx"]

    def test_inline_route_hit_through_component_import(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./A", "./B"),
            make_fact("src/A.tsx"),
            make_fact("src/B.tsx"),
        ])
        routes = [
            _route("/a", "src/Router.tsx", "src/A.tsx", line=3),
            _route("/b", "src/Router.tsx", "src/B.tsx", line=4),
            _route("/inline", "src/Router.tsx", line=5),
        ]
        impacts = propagate(["src/A.tsx"], graph, routes).impacts["src/A.tsx"]
        assert [i.route.route_path for i in impacts] == ["/a", "/inline"]
        assert impacts[1].causal_chain == ["src/A.tsx", "src/Router.tsx"]
        assert impacts[1].reachability == "via-static-import"

    def test_global_style_sheet_hits_every_route(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/main.tsx", "./styles/global.css", "./Router"),
            make_fact("src/Router.tsx", "./A", "./B"),
            make_fact("src/A.tsx"),
            make_fact("src/B.tsx"),
            make_fact("src/styles/global.css"),
        ])
        routes = [
            _route("/b", "src/Router.tsx", "src/B.tsx", line=4),
            _route("/a", "src/Router.tsx", "src/A.tsx", line=3),
        ]
        is_global = lambda path: path == "src/styles/global.css"
        result = propagate(["src/styles/global.css"], graph, routes, global_style=is_global)

        impacts = result.impacts["src/styles/global.css"]
        assert [i.route.route_path for i in impacts] == ["/a", "/b"]
        assert all(i.reachability == "global-style" for i in impacts)
        assert all(i.causal_chain == ["src/styles/global.css"] for i in impacts)
        assert result.unresolved == []

        plain = propagate(["src/styles/global.css"], graph, routes)
        assert plain.reasons["src/styles/global.css"] == "no-route-reachable"


class TestSharedComponents:
    """Changed files that serve more than one route pattern."""

    def test_component_reached_from_two_routes(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./A", "./B"),
            make_fact("src/A.tsx", "./Button"),
            make_fact("src/B.tsx", "./Button"),
            make_fact("src/Button.tsx"),
        ])
        routes = [
            _route("/a", "src/Router.tsx", "src/A.tsx", line=3),
            _route("/b", "src/Router.tsx", "src/B.tsx", line=4),
        ]
        result = propagate(["src/Button.tsx", "src/A.tsx"], graph, routes)
        assert result.shared_components == {"src/Button.tsx": ["/a", "/b"]}
        assert result.to_dict()["sharedComponents"] == {"src/Button.tsx": ["/a", "/b"]}

    def test_single_route_component_is_not_shared(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./A", "./B"),
            make_fact("src/A.tsx"),
            make_fact("src/B.tsx"),
        ])
        routes = [
            _route("/a", "src/Router.tsx", "src/A.tsx"),
            _route("/b", "src/Router.tsx", "src/B.tsx"),
        ]
        assert propagate(["src/A.tsx"], graph, routes).shared_components == {}

    def test_direct_hits_do_not_count(self, chain_graph):
        graph, routes = chain_graph
        routes = routes + [_route("/z", "src/Router.tsx", "src/Other.tsx", line=2)]
        assert propagate(["src/Router.tsx"], graph, routes).shared_components == {}


class TestChainSelection:
    """Deterministic choice among several chains."""

    def test_shortest_chain_wins(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./Page"),
            make_fact("src/Page.tsx", "./Long1", "./Util"),
            make_fact("src/Long1.ts", "./Long2"),
            make_fact("src/Long2.ts", "./Util"),
            make_fact("src/Util.ts"),
        ])
        routes = [_route("/p", "src/Router.tsx", "src/Page.tsx")]
        impact = propagate(["src/Util.ts"], graph, routes).impacts["src/Util.ts"][0]
        assert impact.causal_chain == ["src/Util.ts", "src/Page.tsx", "src/Router.tsx"]

    def test_equal_length_ties_break_lexicographically(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/Router.tsx", "./Zeta", "./Alpha"),
            make_fact("src/Zeta.ts", "./Util"),
            make_fact("src/Alpha.ts", "./Util"),
            make_fact("src/Util.ts"),
        ])
        routes = [_route("/x", "src/Router.tsx")]
        impact = propagate(["src/Util.ts"], graph, routes).impacts["src/Util.ts"][0]
        assert impact.causal_chain == ["src/Util.ts", "src/Alpha.ts", "src/Router.tsx"]


class TestInvariants:
    """Properties that must hold for any graph."""

    def test_cycles_terminate_and_do_not_change_results(self, builder, make_fact):
        acyclic = builder.build([
            make_fact("src/Router.tsx", "./A"),
            make_fact("src/A.tsx", "./B"),
            make_fact("src/B.ts"),
        ])
        cyclic = builder.build([
            make_fact("src/Router.tsx", "./A"),
            make_fact("src/A.tsx", "./B"),
            make_fact("src/B.ts", "./A", "./Router"),
        ])
        routes = [_route("/a", "src/Router.tsx", "src/A.tsx")]

        first = propagate(["src/B.ts"], acyclic, routes)
        second = propagate(["src/B.ts"], cyclic, routes)
        assert first.affected_routes == second.affected_routes == ["/a"]
        assert first.impacts["src/B.ts"][0].causal_chain == \
            second.impacts["src/B.ts"][0].causal_chain

    def test_idempotent(self, chain_graph):
        graph, routes = chain_graph
        propagator = ImpactPropagator(graph, routes)
        changes = ["src/Changed.ts", "src/Mid.tsx"]
        assert propagator.propagate(changes).to_dict() == propagator.propagate(changes).to_dict()

    def test_changeset_order_and_deduplication(self, chain_graph):
        graph, routes = chain_graph
        result = propagate(["src/Mid.tsx", "src/Changed.ts", "src/Mid.tsx"], graph, routes)
        assert list(result.impacts) == ["src/Mid.tsx", "src/Changed.ts"]

    def test_duplicate_route_paths_are_both_kept(self, builder, make_fact):
        graph = builder.build([
            make_fact("src/main/routes.tsx", "../pages/Home"),
            make_fact("src/admin/routes.tsx", "../pages/Home"),
            make_fact("src/pages/Home.tsx"),
        ])
        routes = [
            _route("/home", "src/main/routes.tsx", "src/pages/Home.tsx"),
            _route("/home", "src/admin/routes.tsx", "src/pages/Home.tsx", kind="route-element"),
        ]
        impacts = propagate(["src/pages/Home.tsx"], graph, routes).impacts["src/pages/Home.tsx"]
        assert [i.route.defining_file for i in impacts] == [
            "src/admin/routes.tsx", "src/main/routes.tsx",
        ]


class TestUnresolved:
    """Changed files that reach no route."""

    def test_not_indexed(self, chain_graph):
        graph, routes = chain_graph
        result = propagate(["src/Unknown.ts"], graph, routes)
        assert result.impacts["src/Unknown.ts"] == []
        assert result.unresolved == ["src/Unknown.ts"]
        assert result.reasons["src/Unknown.ts"] == "not-indexed"

    def test_no_route_reachable(self, builder, make_fact, chain_graph):
        _, routes = chain_graph
        graph = builder.build([make_fact("src/Orphan.ts"), make_fact("src/Router.tsx")])
        result = propagate(["src/Orphan.ts"], graph, routes)
        assert result.reasons["src/Orphan.ts"] == "no-route-reachable"

    def test_failed_file_reports_parse_status(self, builder, make_fact):
        facts = [
            make_fact("src/Router.tsx", "./Broken"),
            make_fact("src/Broken.tsx", "./Leaf", failed=True),
            make_fact("src/Leaf.ts"),
        ]
        graph = builder.build(facts)
        routes = [_route("/b", "src/Router.tsx", "src/Broken.tsx")]
        by_path = {fact.path: fact for fact in facts}
        propagator = ImpactPropagator(graph, routes, by_path)

        leaf = propagator.propagate(["src/Leaf.ts"])
        assert leaf.reasons["src/Leaf.ts"] == "no-route-reachable"

        assert graph.imported_by("src/Broken.tsx") == []
        broken = propagator.propagate(["src/Broken.tsx"])
        assert broken.parse_status["src/Broken.tsx"] == "failed"
        assert broken.impacts["src/Broken.tsx"] == []
        assert broken.affected_routes == []
        assert broken.reasons["src/Broken.tsx"] == "parse-failed"

    def test_unresolvable_routes_surface(self, chain_graph):
        graph, routes = chain_graph
        pending = [UnresolvedRoutePath("src/Router.tsx", 9, "`/u/${id}`")]
        result = ImpactPropagator(graph, routes, unresolvable=pending).propagate(["src/Changed.ts"])
        assert result.unresolvable_routes == pending

    def test_to_dict_shape(self, chain_graph):
        graph, routes = chain_graph
        payload = propagate(["src/Changed.ts"], graph, routes).to_dict()
        entry = payload["impacts"]["src/Changed.ts"][0]
        assert entry["routePath"] == "/a"
        assert entry["reachabilityKind"] == "via-static-import"
        assert entry["causalChain"][0] == "src/Changed.ts"
        assert set(payload) == {
            "impacts", "unresolved", "reasons", "parseStatus", "warnings", "unresolvableRoutes",
            "sharedComponents",
        }
