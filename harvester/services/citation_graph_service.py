"""Read-only analysis over stored citation relations."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, List, Set, Tuple

from harvester.exceptions import PaperNotFoundError
from harvester.storage.base import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_PATH_DEPTH = 3


class CitationGraphService:
    """Network, path and similarity queries backed by a :class:`RecordStore`.

    All operations are synchronous and only read citation edges, so they can run
    alongside an in-progress harvest.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def build_network(self, root_id: str, depth: int) -> Dict[str, Set[str]]:
        """Return the adjacency (citing id -> cited ids) reachable from ``root_id``.

        Traversal is breadth first and follows both directions. Every id is
        expanded at most once, so cycles terminate. Ids missing from the store
        are skipped.
        """

        if depth < 0:
            raise ValueError("depth must be non-negative")

        network: Dict[str, Set[str]] = {}
        visited: Set[str] = set()
        queue: Deque[Tuple[str, int]] = deque([(root_id, 0)])

        while queue:
            paper_id, level = queue.popleft()
            if paper_id in visited or level > depth:
                continue
            visited.add(paper_id)

            if self.store.get(paper_id) is None:
                logger.debug("Skipping unknown paper %s in citation network", paper_id)
                continue

            outgoing, incoming = self.store.query_citation_edges(paper_id)
            network.setdefault(paper_id, set()).update(outgoing)
            for citing_id in incoming:
                network.setdefault(citing_id, set()).add(paper_id)

            if level < depth:
                for neighbor in sorted(outgoing | incoming):
                    if neighbor not in visited:
                        queue.append((neighbor, level + 1))

        return network

    def find_paths(
        self, from_id: str, to_id: str, max_depth: int = DEFAULT_MAX_PATH_DEPTH
    ) -> List[List[str]]:
        """Return every simple outgoing-citation path from ``from_id`` to ``to_id``.

        ``max_depth`` bounds the number of edges in a path. Neighbours are
        explored in sorted order.
        """

        if max_depth < 0:
            raise ValueError("max_depth must be non-negative")

        paths: List[List[str]] = []
        on_path: Set[str] = set()

        def visit(current: str, path: List[str], depth: int) -> None:
            if depth > max_depth:
                return
            if current == to_id:
                paths.append(list(path))
                return

            on_path.add(current)
            outgoing, _ = self.store.query_citation_edges(current)
            for cited_id in sorted(outgoing):
                if cited_id in on_path:
                    continue
                path.append(cited_id)
                visit(cited_id, path, depth + 1)
                path.pop()
            on_path.discard(current)

        visit(from_id, [from_id], 0)
        return paths

    def neighborhood(self, paper_id: str) -> Set[str]:
        """Ids ``paper_id`` cites together with ids citing it."""

        if self.store.get(paper_id) is None:
            raise PaperNotFoundError(paper_id)
        outgoing, incoming = self.store.query_citation_edges(paper_id)
        return outgoing | incoming

    def similarity(self, id_a: str, id_b: str) -> float:
        """Jaccard similarity of the two papers' citation neighbourhoods."""

        first = self.neighborhood(id_a)
        second = self.neighborhood(id_b)
        union = first | second
        if not union:
            return 0.0
        return len(first & second) / len(union)
