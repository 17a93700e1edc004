#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
dependency.py - Pod dependency resolution for podpack

 - Version handling using packaging.version
 - Requirement parsing (=, ==, !=, >=, <=, >, <, ~>) and satisfiability checks
 - Directed graph with topological sorting and explicit cycle paths
 - resolve_pods(): fixed-point version selection over a spec repository
"""

from __future__ import annotations
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Dict, List, Tuple, Optional, Set, Any, Iterable

from packaging.version import Version, InvalidVersion

from podpack.logger import get_logger

LOG = get_logger("podpack.dependency")

MAX_PASSES = 10

class ResolveError(Exception):
    """Raised when the pod graph cannot be resolved"""

# ----------------- Utility: constraint parsing & checking -----------------

def parse_version(s: Any) -> Optional[Version]:
    if s is None:
        return None
    try:
        return Version(str(s))
    except InvalidVersion:
        return None

def split_requirements(req: Any) -> List[str]:
    """
    Normalize requirement declarations:
      None -> []
      ">= 1.0, < 2.0" -> [">= 1.0", "< 2.0"]
      ["~> 1.2"] -> ["~> 1.2"]
    """
    if req is None:
        return []
    if isinstance(req, (list, tuple)):
        out: List[str] = []
        for r in req:
            out.extend(split_requirements(r))
        return out
    return [p.strip() for p in str(req).split(",") if p.strip()]

def parse_requirement(req: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Parse simple requirement strings:
      ">=1.2.3" -> (">=", "1.2.3")
      "~> 1.2"  -> ("~>", "1.2")
      "1.2.3"   -> ("==", "1.2.3")
      None -> None
    """
    if req is None:
        return None
    s = str(req).strip()
    for op in ("~>", ">=", "<=", "==", "!=", ">", "<", "="):
        if s.startswith(op):
            return ("==" if op == "=" else op, s[len(op):].strip())
    # no operator => equality
    return ("==", s)

def _optimistic_upper(v: Version) -> Version:
    parts = list(v.release)
    if len(parts) == 1:
        return Version(str(parts[0] + 1))
    bumped = parts[:-1]
    bumped[-1] += 1
    return Version(".".join(str(p) for p in bumped))

def satisfies(candidate_version: Optional[str], requirement: Optional[str]) -> bool:
    """
    Check whether candidate_version satisfies a single requirement.
    """
    if requirement is None:
        return True
    if candidate_version is None:
        return False
    r = parse_requirement(requirement)
    if r is None:
        return True
    op, rval = r
    pv_c = parse_version(candidate_version)
    pv_r = parse_version(rval)
    if pv_c is None or pv_r is None:
        # not parseable: only equality makes sense
        if op == "==":
            return str(candidate_version) == rval
        if op == "!=":
            return str(candidate_version) != rval
        return False
    if op == "==":
        return pv_c == pv_r
    if op == "!=":
        return pv_c != pv_r
    if op == ">":
        return pv_c > pv_r
    if op == "<":
        return pv_c < pv_r
    if op == ">=":
        return pv_c >= pv_r
    if op == "<=":
        return pv_c <= pv_r
    if op == "~>":
        return pv_r <= pv_c < _optimistic_upper(pv_r)
    return False

def satisfies_all(candidate_version: Optional[str], requirements: Iterable[str]) -> bool:
    return all(satisfies(candidate_version, r) for r in requirements)

# ----------------- DependencyGraph -----------------

class DependencyGraph:
    """
    Directed dependency graph.
    adj: pod -> list of (dep_pod, requirement_str or None)
    """

    def __init__(self):
        self.adj: Dict[str, List[Tuple[str, Optional[str]]]] = defaultdict(list)

    def add_node(self, name: str):
        if name not in self.adj:
            self.adj[name] = []

    def add_edge(self, pkg: str, dep: str, requirement: Optional[str] = None):
        self.add_node(pkg)
        self.add_node(dep)
        for (d, req) in self.adj[pkg]:
            if d == dep and req == requirement:
                return
        self.adj[pkg].append((dep, requirement))

    def nodes(self) -> List[str]:
        return list(self.adj.keys())

    def topological_sort(self) -> Dict[str, Any]:
        nodes = list(self.adj.keys())
        node_set = set(nodes)
        indeg = {n: 0 for n in nodes}
        for n in nodes:
            for (dst, _) in self.adj.get(n, []):
                if dst in node_set:
                    indeg[dst] += 1
        q = deque([n for n in nodes if indeg[n] == 0])
        order = []
        while q:
            n = q.popleft()
            order.append(n)
            for (dst, _) in self.adj.get(n, []):
                if dst not in node_set:
                    continue
                indeg[dst] -= 1
                if indeg[dst] == 0:
                    q.append(dst)
        if len(order) != len(nodes):
            return {"order": order, "cycles": self._find_cycles(node_set)}
        return {"order": order, "cycles": []}

    def _find_cycles(self, nodes: Set[str]) -> List[List[str]]:
        visited = set()
        onstack = set()
        stack = []
        cycles = []

        def dfs(u):
            visited.add(u)
            onstack.add(u)
            stack.append(u)
            for (v, _) in self.adj.get(u, []):
                if v not in nodes:
                    continue
                if v not in visited:
                    dfs(v)
                elif v in onstack:
                    idx = stack.index(v)
                    cycles.append(stack[idx:] + [v])
            stack.pop()
            onstack.remove(u)

        for n in sorted(nodes):
            if n not in visited:
                dfs(n)
        return cycles

    def install_order(self, root: str) -> List[str]:
        """Dependencies first, root last."""
        topo = self.topological_sort()
        if topo["cycles"]:
            pretty = "; ".join(" -> ".join(c) for c in topo["cycles"])
            raise ResolveError(f"Dependency cycle detected: {pretty}")
        return list(reversed(topo["order"]))

# ----------------- Pod resolution -----------------

@dataclass
class ResolvedPod:
    spec: Any
    selection: Set[str] = field(default_factory=set)
    requirements: List[Tuple[str, str]] = field(default_factory=list)
    external: bool = False

    @property
    def name(self) -> str:
        return self.spec.name

    def active_specs(self) -> List[Any]:
        return self.spec.specs_for_selection(self.selection)


@dataclass
class Resolution:
    pods: Dict[str, ResolvedPod]
    order: List[str]
    graph: DependencyGraph

    def __iter__(self):
        for name in self.order:
            yield self.pods[name]


def resolve_pods(root_spec: Any,
                 resolver: Any,
                 platform_name: Optional[str] = None,
                 subspecs: Optional[List[str]] = None,
                 root_requirements: Optional[List[str]] = None) -> Resolution:
    """
    Resolve root_spec and everything it needs.
    - resolver: object with find(name, requirements) -> Spec
    - subspecs: short or qualified subspec names selected on the root pod
    Returns pods in install order (dependencies first).
    """
    root_name = root_spec.name
    root_selection = {_qualify(root_name, s) for s in subspecs} if subspecs else {""}
    chosen: Dict[str, Any] = {root_name: root_spec}

    for attempt in range(1, MAX_PASSES + 1):
        graph = DependencyGraph()
        selection: Dict[str, Set[str]] = defaultdict(set)
        requirements: Dict[str, List[Tuple[str, str]]] = defaultdict(list)
        selection[root_name] |= root_selection
        for req in root_requirements or []:
            requirements[root_name].append(("<manifest>", req))

        graph.add_node(root_name)
        queue = deque([root_name])
        expanded: Dict[str, Set[str]] = {}
        while queue:
            name = queue.popleft()
            if name not in chosen:
                reqs = [r for (_, r) in requirements[name]]
                chosen[name] = resolver.find(name, reqs)
            spec = chosen[name]
            current = set(selection[name])
            if expanded.get(name) == current:
                continue
            expanded[name] = current
            for sub in spec.specs_for_selection(current):
                for dep in sub.dependencies(platform_name):
                    dep_root = dep.root_name
                    if dep_root == name:
                        continue
                    graph.add_edge(name, dep_root, ", ".join(dep.requirements) or None)
                    for req in dep.requirements:
                        if (name, req) not in requirements[dep_root]:
                            requirements[dep_root].append((name, req))
                    selection[dep_root].add(dep.name if dep.subspec else "")
                    queue.append(dep_root)

        changed = False
        for name in graph.nodes():
            if name == root_name:
                unmet = [r for (_, r) in requirements[name] if not satisfies(chosen[name].version, r)]
                if unmet:
                    raise ResolveError(f"{name} ({chosen[name].version}) does not satisfy {', '.join(unmet)}")
                continue
            reqs = [r for (_, r) in requirements[name]]
            best = resolver.find(name, reqs)
            if str(best.version) != str(chosen[name].version):
                LOG.debug(f"pass {attempt}: {name} {chosen[name].version} -> {best.version}")
                chosen[name] = best
                changed = True
        if not changed:
            pods = {
                n: ResolvedPod(spec=chosen[n], selection=set(selection[n]) or {""},
                               requirements=list(requirements[n]), external=(n == root_name))
                for n in graph.nodes()
            }
            return Resolution(pods=pods, order=graph.install_order(root_name), graph=graph)

    raise ResolveError(f"Unable to settle versions for {root_name} after {MAX_PASSES} passes")


def _qualify(root_name: str, subspec: str) -> str:
    subspec = subspec.strip()
    if subspec.startswith(root_name + "/"):
        return subspec
    return f"{root_name}/{subspec}"
