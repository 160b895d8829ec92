"""CheckService — read-only integrity report for one user's graph.

Five categories: root uniqueness, containment reachability, label
consistency, authorship, and containment cycles. Nothing is repaired;
acyclicity in particular is reported here rather than enforced on write.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from kbgraph.domain.labels import EdgeType, Label, labels_consistent
from kbgraph.infrastructure.database.schema import edges, nodes
from kbgraph.infrastructure.graph.engine import build_containment_graph, containment_cycles
from kbgraph.infrastructure.store import StoreError
from kbgraph.services.base import BaseService
from kbgraph.services.contracts import CheckResultData, dump_validated
from kbgraph.services.result import ServiceResult
from kbgraph.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from sqlalchemy import Connection

    from kbgraph.domain.models import User
    from kbgraph.infrastructure.graph.engine import ContainmentGraph


# ---------------------------------------------------------------------------
# Issue severity and category constants
# ---------------------------------------------------------------------------

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

CAT_ROOT = "root_uniqueness"
CAT_CONTAINMENT = "containment"
CAT_LABELS = "label_consistency"
CAT_AUTHORSHIP = "authorship"
CAT_CYCLES = "containment_cycles"


def _issue(
    category: str, severity: str, message: str, node_id: str | None = None
) -> dict[str, Any]:
    return {"category": category, "severity": severity, "node_id": node_id, "message": message}


class CheckService(BaseService):
    """Handles graph integrity checking."""

    @traced
    def check(self, user: User) -> ServiceResult:
        """Report integrity issues without modifying anything.

        All reads share one store transaction, so the report describes a
        single consistent state of the graph.
        """
        op = "check"
        issues: list[dict[str, Any]] = []
        try:
            with self._store.transaction() as txn:
                conn = txn.conn
                g = build_containment_graph(conn, user.id)
                with trace_span("root_uniqueness"):
                    issues.extend(self._check_root(g))
                with trace_span("containment"):
                    issues.extend(self._check_containment(g))
                    issues.extend(self._check_dangling(conn, user.id))
                with trace_span("label_consistency"):
                    issues.extend(self._check_labels(g))
                with trace_span("authorship"):
                    issues.extend(self._check_authorship(conn, user.id))
                with trace_span("containment_cycles"):
                    issues.extend(self._check_cycles(g))
        except StoreError as exc:
            return self._store_failure(op, exc)

        healthy = not any(i["severity"] == SEVERITY_ERROR for i in issues)
        return ServiceResult(
            ok=True,
            op=op,
            data=dump_validated(
                CheckResultData, {"healthy": healthy, "count": len(issues), "issues": issues}
            ),
            meta={"nodes": g.number_of_nodes(), "edges": g.number_of_edges()},
        )

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    @staticmethod
    def _check_root(g: ContainmentGraph) -> list[dict[str, Any]]:
        roots = [n for n, attrs in g.nodes(data=True) if attrs["is_root_collection"]]
        if len(roots) == 1:
            return []
        if not roots:
            severity = SEVERITY_ERROR if g.number_of_nodes() else SEVERITY_WARNING
            return [_issue(CAT_ROOT, severity, "User has no root collection")]
        return [
            _issue(CAT_ROOT, SEVERITY_ERROR, f"One of {len(roots)} root collections", node_id=n)
            for n in sorted(roots)
        ]

    @staticmethod
    def _check_containment(g: ContainmentGraph) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        for node_id, attrs in g.nodes(data=True):
            if attrs["is_root_collection"]:
                continue
            if g.out_degree(node_id) == 0:
                issues.append(
                    _issue(
                        CAT_CONTAINMENT,
                        SEVERITY_WARNING,
                        "Node is not contained by any collection",
                        node_id=node_id,
                    )
                )
            for _, container in g.out_edges(node_id):
                if Label.COLLECTION not in g.nodes[container]["labels"]:
                    issues.append(
                        _issue(
                            CAT_CONTAINMENT,
                            SEVERITY_WARNING,
                            f"Contained by {container}, which cannot contain nodes",
                            node_id=node_id,
                        )
                    )
        return issues

    @staticmethod
    def _check_labels(g: ContainmentGraph) -> list[dict[str, Any]]:
        issues: list[dict[str, Any]] = []
        for node_id, attrs in g.nodes(data=True):
            labels = attrs["labels"]
            if Label.NODE not in labels:
                issues.append(
                    _issue(CAT_LABELS, SEVERITY_ERROR, "Missing Node label", node_id=node_id)
                )
            if not labels_consistent(attrs["type"], labels):
                issues.append(
                    _issue(
                        CAT_LABELS,
                        SEVERITY_ERROR,
                        f"Labels {sorted(labels)} do not match type {attrs['type']!r}",
                        node_id=node_id,
                    )
                )
            if (Label.ROOT_COLLECTION in labels) != attrs["is_root_collection"]:
                issues.append(
                    _issue(
                        CAT_LABELS,
                        SEVERITY_ERROR,
                        "RootCollection label disagrees with is_root_collection",
                        node_id=node_id,
                    )
                )
        return issues

    @staticmethod
    def _check_authorship(conn: Connection, user_id: str) -> list[dict[str, Any]]:
        owned = select(edges.c.end_id).where(
            edges.c.type == EdgeType.AUTHOR.value,
            edges.c.start_id == user_id,
        )
        rows = conn.execute(
            select(edges.c.end_id, func.count().label("authors"))
            .where(edges.c.type == EdgeType.AUTHOR.value, edges.c.end_id.in_(owned))
            .group_by(edges.c.end_id)
            .having(func.count() > 1)
            .order_by(edges.c.end_id)
        ).fetchall()
        return [
            _issue(
                CAT_AUTHORSHIP,
                SEVERITY_ERROR,
                f"Node has {r.authors} author edges",
                node_id=r.end_id,
            )
            for r in rows
        ]

    @staticmethod
    def _check_dangling(conn: Connection, user_id: str) -> list[dict[str, Any]]:
        owned = select(edges.c.end_id).where(
            edges.c.type == EdgeType.AUTHOR.value,
            edges.c.start_id == user_id,
        )
        dangling = conn.execute(
            select(edges.c.id, edges.c.end_id)
            .where(
                edges.c.type == EdgeType.CONTAINMENT.value,
                edges.c.end_id.in_(owned),
                edges.c.start_id.not_in(select(nodes.c.id)),
            )
            .order_by(edges.c.id)
        ).fetchall()
        return [
            _issue(
                CAT_CONTAINMENT,
                SEVERITY_ERROR,
                f"Containment edge {r.id} starts at a missing node",
                node_id=r.end_id,
            )
            for r in dangling
        ]

    @staticmethod
    def _check_cycles(g: ContainmentGraph) -> list[dict[str, Any]]:
        return [
            _issue(
                CAT_CYCLES,
                SEVERITY_ERROR,
                "Containment cycle: " + " -> ".join([*cycle, cycle[0]]),
                node_id=cycle[0],
            )
            for cycle in containment_cycles(g)
        ]
