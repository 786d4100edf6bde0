"""
测试用例源

从 YAML 文件加载已经生成好的测试用例，按标签过滤，并以资源清单为基准构造完整的期望真值表。

文件格式::

    testCases:
      - description: deny all ingress to namespace y
        tags: [deny-all, ingress]
        steps:
          - action: create-policy
            policy: {apiVersion: networking.k8s.io/v1, kind: NetworkPolicy, ...}
            probeMode: pod-ip
            portProtocols: ["80/TCP"]
            expected:
              default: true
              overrides:
                - {from: "*", to: "y/*", reachable: false}
"""

import logging
from collections import Counter
from typing import Dict, List, Any, Optional, Iterable, Iterator

import yaml

from connectivity_checker.core.inventory import ResourceInventory
from connectivity_checker.exceptions import TestCaseFormatError, ConfigurationError
from connectivity_checker.models.data_models import (
    Identity,
    PortProtocol,
    ProbeMode,
    PerturbationType,
    Perturbation
)
from connectivity_checker.models.test_case import Step, TestCase
from connectivity_checker.models.truth_table import TruthTable

logger = logging.getLogger(__name__)

_REACHABLE_WORDS = {"reachable": True, "allow": True, "unreachable": False, "deny": False}


def _parse_reachable(value: Any, where: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in _REACHABLE_WORDS:
        return _REACHABLE_WORDS[value.lower()]
    raise TestCaseFormatError(f"{where}: 无法识别的可达性取值 {value!r}")


def _matches(pattern: Optional[str], identity: Identity) -> bool:
    """* 匹配任意 Pod，ns/* 匹配命名空间内所有 Pod"""
    if pattern is None or pattern == "*":
        return True
    namespace, _, name = str(pattern).partition('/')
    if namespace != "*" and namespace != identity.namespace:
        return False
    return name in ("", "*") or name == identity.name


def filter_test_cases(test_cases: Iterable[TestCase], include: Iterable[str] = (),
                      exclude: Iterable[str] = ()) -> List[TestCase]:
    """include 为空时全部包含；含任一 exclude 标签的用例被排除"""
    include = set(include)
    exclude = set(exclude)
    selected = []
    for test_case in test_cases:
        if include and not (test_case.tags & include):
            continue
        if test_case.tags & exclude:
            continue
        selected.append(test_case)
    return selected


def count_by_tag(test_cases: Iterable[TestCase]) -> Dict[str, int]:
    counts = Counter()
    for test_case in test_cases:
        counts.update(test_case.tags)
    return dict(sorted(counts.items()))


class YamlTestCaseSource:
    """
    一次性的测试用例序列

    构造时即完成解析和校验；迭代只能进行一次。
    """

    def __init__(
        self,
        path: str,
        inventory: ResourceInventory,
        include: Iterable[str] = (),
        exclude: Iterable[str] = (),
        probe_mode_override: Optional[ProbeMode] = None
    ):
        self.path = path
        self.inventory = inventory
        self.probe_mode_override = probe_mode_override
        self._consumed = False

        with open(path, 'r', encoding='utf-8') as f:
            document = yaml.safe_load(f) or {}
        if not isinstance(document, dict) or not isinstance(document.get('testCases'), list):
            raise TestCaseFormatError(f"{path}: 顶层必须包含 testCases 列表")

        parsed = [self._parse_test_case(i, raw) for i, raw in enumerate(document['testCases'], 1)]
        self.test_cases = filter_test_cases(parsed, include, exclude)
        logger.info(f"✓ 从 {path} 加载 {len(parsed)} 个测试用例，过滤后 {len(self.test_cases)} 个")

    def __len__(self) -> int:
        return len(self.test_cases)

    def __iter__(self) -> Iterator[TestCase]:
        if self._consumed:
            raise RuntimeError("测试用例源只能被消费一次")
        self._consumed = True
        return iter(list(self.test_cases))

    def _parse_test_case(self, index: int, raw: Dict[str, Any]) -> TestCase:
        where = f"testCases[{index}]"
        if not isinstance(raw, dict):
            raise TestCaseFormatError(f"{where}: 必须是映射")
        steps = raw.get('steps')
        if not isinstance(steps, list) or not steps:
            raise TestCaseFormatError(f"{where}: steps 必须是非空列表")
        return TestCase(
            description=str(raw.get('description') or f"test case {index}"),
            steps=[self._parse_step(f"{where}.steps[{i}]", s) for i, s in enumerate(steps, 1)],
            tags=frozenset(raw.get('tags') or [])
        )

    def _parse_step(self, where: str, raw: Dict[str, Any]) -> Step:
        if not isinstance(raw, dict):
            raise TestCaseFormatError(f"{where}: 必须是映射")
        try:
            probe_mode = self.probe_mode_override or ProbeMode.parse(raw.get('probeMode', 'pod-ip'))
            port_protocols = ([PortProtocol.parse(p) for p in raw['portProtocols']]
                              if raw.get('portProtocols') else self.inventory.port_protocols)
        except ConfigurationError as e:
            raise TestCaseFormatError(f"{where}: {e}") from e
        return Step(
            perturbation=self._parse_perturbation(where, raw),
            expected=self._parse_expected(where, raw.get('expected'), port_protocols),
            probe_mode=probe_mode,
            description=str(raw.get('description', ''))
        )

    def _parse_perturbation(self, where: str, raw: Dict[str, Any]) -> Perturbation:
        try:
            action = PerturbationType(raw.get('action'))
        except ValueError:
            raise TestCaseFormatError(
                f"{where}: 未知的 action {raw.get('action')!r}，可选值: "
                f"{', '.join(t.value for t in PerturbationType)}"
            )
        if action in (PerturbationType.CREATE_POLICY, PerturbationType.UPDATE_POLICY):
            if not isinstance(raw.get('policy'), dict):
                raise TestCaseFormatError(f"{where}: {action.value} 需要 policy 映射")
            return Perturbation(action, policy=raw['policy'])
        if action == PerturbationType.DELETE_POLICY:
            if not raw.get('namespace') or not raw.get('name'):
                raise TestCaseFormatError(f"{where}: delete-policy 需要 namespace 和 name")
            return Perturbation.delete_policy(raw['namespace'], raw['name'])
        labels = {str(k): str(v) for k, v in (raw.get('labels') or {}).items()}
        if action == PerturbationType.SET_NAMESPACE_LABELS:
            if not raw.get('namespace'):
                raise TestCaseFormatError(f"{where}: set-namespace-labels 需要 namespace")
            return Perturbation.set_namespace_labels(raw['namespace'], labels)
        if not raw.get('namespace') or not raw.get('pod'):
            raise TestCaseFormatError(f"{where}: set-pod-labels 需要 namespace 和 pod")
        return Perturbation.set_pod_labels(raw['namespace'], raw['pod'], labels)

    def _parse_expected(self, where: str, raw: Optional[Dict[str, Any]],
                        port_protocols: List[PortProtocol]) -> TruthTable:
        """以 default 填满整张表，再按顺序应用 overrides（后者覆盖前者）"""
        if not isinstance(raw, dict) or 'default' not in raw:
            raise TestCaseFormatError(f"{where}: expected 必须包含 default")
        table = TruthTable(self.inventory.identities, port_protocols)
        table.fill(_parse_reachable(raw['default'], f"{where}.expected.default"))

        for i, override in enumerate(raw.get('overrides') or [], 1):
            owhere = f"{where}.expected.overrides[{i}]"
            if not isinstance(override, dict) or 'reachable' not in override:
                raise TestCaseFormatError(f"{owhere}: 必须包含 reachable")
            value = _parse_reachable(override['reachable'], owhere)
            port = override.get('port')
            if port is not None and not str(port).isdigit():
                raise TestCaseFormatError(f"{owhere}: 非法的端口 {port!r}")
            protocol = override.get('protocol')
            matched = 0
            for src, dst, pp in table.keys():
                if not _matches(override.get('from'), src) or not _matches(override.get('to'), dst):
                    continue
                if port is not None and pp.port != int(port):
                    continue
                if protocol is not None and pp.protocol.value != str(protocol).upper():
                    continue
                table.set(src, dst, pp, value)
                matched += 1
            if matched == 0:
                logger.warning(f"{owhere} 没有匹配任何单元格")
        return table
