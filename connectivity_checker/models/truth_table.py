"""
真值表

以 (源身份, 目标身份, 端口/协议) 为键的可达性矩阵，期望表和观测表共用同一结构。
提供对比（diff）与确定性的文本渲染。
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Iterable, Iterator, Tuple, Union, Callable

from connectivity_checker.models.data_models import Identity, PortProtocol, Outcome

IdentityLike = Union[Identity, str]
CellValue = Union[Outcome, bool]

_RENDER_SYMBOLS = {
    Outcome.REACHABLE: ".",
    Outcome.UNREACHABLE: "X",
    Outcome.INDETERMINATE: "?",
    None: "-",
}


@dataclass(frozen=True)
class DiffCell:
    """一个不一致的单元格"""
    source: Identity
    destination: Identity
    port_protocol: PortProtocol
    expected: Outcome
    observed: Outcome

    @property
    def is_loopback(self) -> bool:
        return self.source == self.destination

    def __str__(self) -> str:
        return (f"{self.source} -> {self.destination} {self.port_protocol}: "
                f"期望 {self.expected.value}, 实际 {self.observed.value}")


@dataclass
class TableDiff:
    """
    期望表与观测表的差异

    mismatches 是确定性的不一致（策略缺陷）；warnings 是观测结果为
    INDETERMINATE 的单元格，只作为告警，不影响通过与否。
    """
    mismatches: List[DiffCell] = field(default_factory=list)
    warnings: List[DiffCell] = field(default_factory=list)
    compared_cells: int = 0
    ignored_cells: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.mismatches

    @property
    def passed(self) -> bool:
        return not self.mismatches


class TruthTable:
    """
    可达性真值表

    所有单元格在构造时预先分配，初始为未设置（None）。并发探测时每个任务只写自己的
    单元格，因此不需要加锁。
    """

    def __init__(self, identities: Iterable[Identity], port_protocols: Iterable[PortProtocol]):
        self._identities: List[Identity] = list(identities)
        self._port_protocols: List[PortProtocol] = list(port_protocols)
        self._by_key: Dict[str, Identity] = {}
        for identity in self._identities:
            if identity.key in self._by_key:
                raise ValueError(f"重复的身份: {identity.key}")
            self._by_key[identity.key] = identity
        if len(set(self._port_protocols)) != len(self._port_protocols):
            raise ValueError("重复的端口/协议组合")
        self._cells: Dict[Tuple[Identity, Identity, PortProtocol], Optional[Outcome]] = {
            (src, dst, pp): None
            for src in self._identities
            for dst in self._identities
            for pp in self._port_protocols
        }

    @classmethod
    def from_function(cls, identities: Iterable[Identity], port_protocols: Iterable[PortProtocol],
                      func: Callable[[Identity, Identity, PortProtocol], CellValue]) -> 'TruthTable':
        """用函数填充每个单元格"""
        table = cls(identities, port_protocols)
        for src, dst, pp in table.keys():
            table.set(src, dst, pp, func(src, dst, pp))
        return table

    @property
    def identities(self) -> List[Identity]:
        return list(self._identities)

    @property
    def port_protocols(self) -> List[PortProtocol]:
        return list(self._port_protocols)

    def resolve(self, identity: IdentityLike) -> Identity:
        key = identity.key if isinstance(identity, Identity) else str(identity)
        try:
            return self._by_key[key]
        except KeyError:
            raise KeyError(f"真值表中不存在身份: {key}")

    def _cell_key(self, source: IdentityLike, destination: IdentityLike,
                  port_protocol: PortProtocol) -> Tuple[Identity, Identity, PortProtocol]:
        key = (self.resolve(source), self.resolve(destination), port_protocol)
        if key not in self._cells:
            raise KeyError(f"真值表中不存在端口/协议: {port_protocol}")
        return key

    def set(self, source: IdentityLike, destination: IdentityLike,
            port_protocol: PortProtocol, value: CellValue):
        """写入单元格；相同值重复写入无影响，不同值覆盖（后写为准）"""
        if isinstance(value, bool):
            value = Outcome.from_bool(value)
        if not isinstance(value, Outcome):
            raise TypeError(f"非法的单元格值: {value!r}")
        self._cells[self._cell_key(source, destination, port_protocol)] = value

    def get(self, source: IdentityLike, destination: IdentityLike,
            port_protocol: PortProtocol) -> Optional[Outcome]:
        return self._cells[self._cell_key(source, destination, port_protocol)]

    def fill(self, value: CellValue):
        for src, dst, pp in self.keys():
            self.set(src, dst, pp, value)

    def keys(self) -> Iterator[Tuple[Identity, Identity, PortProtocol]]:
        """按身份顺序和端口/协议顺序遍历所有单元格键"""
        for src in self._identities:
            for dst in self._identities:
                for pp in self._port_protocols:
                    yield src, dst, pp

    def unset_cells(self) -> List[Tuple[Identity, Identity, PortProtocol]]:
        return [key for key in self.keys() if self._cells[key] is None]

    def is_complete(self) -> bool:
        return not self.unset_cells()

    def same_shape(self, other: 'TruthTable') -> bool:
        return (self._identities == other._identities
                and self._port_protocols == other._port_protocols)

    def empty_copy(self) -> 'TruthTable':
        """形状相同、所有单元格未设置的新表"""
        return TruthTable(self._identities, self._port_protocols)

    def count(self, value: Outcome) -> int:
        return sum(1 for v in self._cells.values() if v == value)

    def __len__(self) -> int:
        return len(self._cells)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TruthTable):
            return NotImplemented
        return self.same_shape(other) and self._cells == other._cells

    def render(self) -> str:
        """
        渲染为文本网格

        每个端口/协议一张表，行是源，列是目标，顺序与身份顺序一致，
        因此同一张表多次渲染的结果完全相同。
        """
        return _render_grids(
            self._identities, self._port_protocols,
            lambda src, dst, pp: _RENDER_SYMBOLS[self._cells[(src, dst, pp)]]
        )

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, Optional[str]]]]:
        """{端口/协议: {源: {目标: 结果}}}"""
        return {
            str(pp): {
                src.key: {
                    dst.key: (self._cells[(src, dst, pp)].value
                              if self._cells[(src, dst, pp)] is not None else None)
                    for dst in self._identities
                }
                for src in self._identities
            }
            for pp in self._port_protocols
        }


def diff(expected: TruthTable, observed: TruthTable, ignore_loopback: bool = False) -> TableDiff:
    """
    对比期望表与观测表

    Args:
        expected: 期望真值表（必须完整）
        observed: 观测真值表
        ignore_loopback: 为 True 时跳过源与目标相同的单元格

    Returns:
        TableDiff: 稀疏的不一致列表
    """
    if not expected.same_shape(observed):
        raise ValueError("期望表与观测表的形状不一致")
    unset = expected.unset_cells()
    if unset:
        src, dst, pp = unset[0]
        raise ValueError(f"期望表存在未定义的单元格 ({len(unset)} 个)，例如 {src} -> {dst} {pp}")

    result = TableDiff()
    for src, dst, pp in expected.keys():
        if ignore_loopback and src == dst:
            result.ignored_cells += 1
            continue
        result.compared_cells += 1
        exp = expected.get(src, dst, pp)
        obs = observed.get(src, dst, pp)
        if obs is None:
            raise ValueError(f"观测表存在未写入的单元格: {src} -> {dst} {pp}")
        if obs == Outcome.INDETERMINATE:
            result.warnings.append(DiffCell(src, dst, pp, exp, obs))
        elif obs != exp:
            result.mismatches.append(DiffCell(src, dst, pp, exp, obs))
    return result


def render_comparison(expected: TruthTable, observed: TruthTable, ignore_loopback: bool = False) -> str:
    """
    渲染对比网格：. 一致，X 不一致，? 不确定，I 忽略的回环
    """
    if not expected.same_shape(observed):
        raise ValueError("期望表与观测表的形状不一致")

    def symbol(src: Identity, dst: Identity, pp: PortProtocol) -> str:
        if ignore_loopback and src == dst:
            return "I"
        obs = observed.get(src, dst, pp)
        if obs is None:
            return "-"
        if obs == Outcome.INDETERMINATE:
            return "?"
        return "." if obs == expected.get(src, dst, pp) else "X"

    return _render_grids(expected.identities, expected.port_protocols, symbol)


def _render_grids(identities: List[Identity], port_protocols: List[PortProtocol],
                  symbol: Callable[[Identity, Identity, PortProtocol], str]) -> str:
    keys = [identity.key for identity in identities]
    width = max([len(k) for k in keys] + [1])
    lines = []
    for pp in port_protocols:
        lines.append(f"{pp}:")
        lines.append(" ".join([" " * width] + [k.rjust(width) for k in keys]))
        for src in identities:
            row = [src.key.ljust(width)]
            row.extend(symbol(src, dst, pp).rjust(width) for dst in identities)
            lines.append(" ".join(row))
        lines.append("")
    return "\n".join(lines).rstrip("\n")
