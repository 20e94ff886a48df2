"""Removal of dependency cycles from raw resolver graphs."""

import logging
from typing import Dict, FrozenSet, List, Set, Tuple

from .exceptions import MalformedGraphError
from .models import DependencyNode

logger = logging.getLogger(__name__)

Identity = Tuple[str, ...]


def _identity(node: DependencyNode) -> Identity:
    if node is None or node.artifact is None:
        raise MalformedGraphError("Dependency graph contains a node without an artifact")
    return node.artifact.identity


def _holds_any(node: DependencyNode, identities: Set[Identity]) -> bool:
    """Whether the finished subtree under node contains any of the identities."""
    seen = {id(node)}
    stack = [node]
    while stack:
        current = stack.pop()
        if current.artifact.identity in identities:
            return True
        for child in current.children:
            if id(child) not in seen:
                seen.add(id(child))
                stack.append(child)
    return False


class CycleBreaker:
    """
    Drops every edge that leads back to an artifact already on the current path.

    The graph is walked depth-first with an explicit stack so that deep or
    adversarial graphs cannot exhaust the interpreter stack. Child lists are
    rebuilt rather than edited in place while being iterated.

    Sharing is tracked per node object, while paths are compared by artifact
    identity. A node shared by several parents is expanded once and its
    finished subtree is reused under later parents, as long as that subtree
    holds no identity on the later path and every edge cut inside it is still
    cut there. Otherwise the node is copied and expanded again for that path.
    """

    def __init__(self):
        self.removed_edges = 0
        self.copied_nodes = 0

    def break_cycles(self, root: DependencyNode) -> DependencyNode:
        """Remove cycles reachable from root and return the same, now acyclic, root."""
        self.removed_edges = 0
        self.copied_nodes = 0

        on_path: Set[Identity] = {_identity(root)}
        expanded: Set[int] = {id(root)}
        original: Dict[int, List[DependencyNode]] = {id(root): list(root.children)}
        kept: Dict[int, List[DependencyNode]] = {id(root): []}
        cut: Dict[int, Set[Identity]] = {id(root): set()}
        # Per finished node: edges cut inside its subtree against identities above it
        outer_cuts: Dict[int, FrozenSet[Identity]] = {}
        stack = [(root, iter(original[id(root)]))]

        while stack:
            node, pending = stack[-1]
            child = next(pending, None)

            if child is None:
                identity = _identity(node)
                node.children = kept.pop(id(node))
                cuts = cut.pop(id(node))
                for kept_child in node.children:
                    cuts |= outer_cuts[id(kept_child)]
                cuts.discard(identity)
                outer_cuts[id(node)] = frozenset(cuts)
                on_path.discard(identity)
                stack.pop()
                continue

            child_identity = _identity(child)
            if child_identity in on_path:
                self.removed_edges += 1
                cut[id(node)].add(child_identity)
                logger.debug(f"Removing cycle edge {node.artifact} -> {child.artifact}")
                continue

            if id(child) in expanded:
                if outer_cuts[id(child)] <= on_path and not _holds_any(child, on_path):
                    kept[id(node)].append(child)
                    continue

                logger.debug(f"Expanding shared node {child.artifact} again below {node.artifact}")
                source = child
                child = source.copy()
                original[id(child)] = original[id(source)]
                self.copied_nodes += 1
            else:
                expanded.add(id(child))
                original[id(child)] = list(child.children)

            kept[id(node)].append(child)
            kept[id(child)] = []
            cut[id(child)] = set()
            on_path.add(child_identity)
            stack.append((child, iter(original[id(child)])))

        if self.removed_edges:
            logger.info(f"Removed {self.removed_edges} cyclic dependency edges")
        if self.copied_nodes:
            logger.info(f"Copied {self.copied_nodes} shared nodes whose subtree depends on their path")
        return root
