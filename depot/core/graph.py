"""依赖图与安装顺序

节点保存在按插入顺序排列的列表中，边用下标表示，只在同一工作集内解析，
不会重新查询索引。dependency_order 用显式栈做后序遍历，每个节点至多访问
一次，因此环必然终止；环内的相对顺序不做保证，也不报错。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from depot.core.models import PackageSpec
from depot.core.version import Dependency

logger = logging.getLogger(__name__)


class DependencyGraph:
    """一组包描述及其依赖边"""

    def __init__(self, specs: Iterable[PackageSpec] = ()) -> None:
        self._nodes: list[PackageSpec] = []
        self._positions: dict[str, int] = {}
        self.add_all(specs)

    def add(self, spec: PackageSpec) -> bool:
        """加入节点；同 full_name 已存在时忽略并返回 False"""
        if spec.full_name in self._positions:
            return False
        self._positions[spec.full_name] = len(self._nodes)
        self._nodes.append(spec)
        return True

    def add_all(self, specs: Iterable[PackageSpec]) -> None:
        for spec in specs:
            self.add(spec)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[PackageSpec]:
        return iter(list(self._nodes))

    def __contains__(self, spec: object) -> bool:
        return isinstance(spec, PackageSpec) and spec.full_name in self._positions

    def _providers(self, dep: Dependency) -> list[int]:
        return [
            i for i, node in enumerate(self._nodes)
            if dep.matches(node.name, node.version)
        ]

    def _edges(self) -> list[list[int]]:
        edges: list[list[int]] = []
        for node in self._nodes:
            targets: list[int] = []
            for dep in node.dependencies:
                for i in self._providers(dep):
                    if i not in targets:
                        targets.append(i)
            edges.append(targets)
        return edges

    def dependency_order(self) -> list[PackageSpec]:
        """依赖在前、被依赖者在后；互不相关的节点保持插入顺序"""
        edges = self._edges()
        visited = [False] * len(self._nodes)
        order: list[PackageSpec] = []

        for start in range(len(self._nodes)):
            if visited[start]:
                continue
            visited[start] = True
            stack = [(start, iter(edges[start]))]
            while stack:
                node, children = stack[-1]
                for child in children:
                    if not visited[child]:
                        visited[child] = True
                        stack.append((child, iter(edges[child])))
                        break
                else:
                    stack.pop()
                    order.append(self._nodes[node])
        return order

    def unmet_dependencies(self) -> list[tuple[PackageSpec, Dependency]]:
        """工作集内没有任何节点能满足的依赖"""
        unmet = []
        for node in self._nodes:
            for dep in node.dependencies:
                if not self._providers(dep):
                    unmet.append((node, dep))
        return unmet

    def ok(self) -> bool:
        return not self.unmet_dependencies()
