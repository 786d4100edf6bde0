import pytest

from connectivity_checker.core.probe_runner import ProbeRunner
from connectivity_checker.exceptions import ConfigurationError
from connectivity_checker.kube.mock import MockProbeExecutor
from connectivity_checker.models.data_models import Outcome, ProbeMode


class TestProbeRunner:

    @pytest.mark.parametrize("retries", [0, 1, 3])
    def test_always_failing_executor_is_attempted_retries_plus_one(self, identities, tcp80, retries):
        executor = MockProbeExecutor(identities, transient=lambda src, dst, pp: True)
        runner = ProbeRunner(executor, retries=retries)

        outcome = runner.probe(identities[0], identities[1], tcp80)

        assert outcome == Outcome.INDETERMINATE
        assert executor.total_attempts == retries + 1

    def test_unreachable_is_not_retried(self, identities, tcp80):
        executor = MockProbeExecutor(identities, reachable=lambda src, dst, pp: False)
        runner = ProbeRunner(executor, retries=5)

        assert runner.probe(identities[0], identities[1], tcp80) == Outcome.UNREACHABLE
        assert executor.total_attempts == 1

    def test_recovers_after_transient_failure(self, identities, tcp80):
        failures = {"left": 1}

        def transient(src, dst, pp):
            if failures["left"]:
                failures["left"] -= 1
                return True
            return False

        executor = MockProbeExecutor(identities, transient=transient)
        runner = ProbeRunner(executor, retries=1)

        assert runner.probe(identities[0], identities[2], tcp80) == Outcome.REACHABLE
        assert executor.attempts_for("x/a", "z/c", tcp80) == 2

    @pytest.mark.parametrize("mode", list(ProbeMode))
    def test_destination_address_follows_probe_mode(self, identities, tcp80, mode):
        executor = MockProbeExecutor(identities)
        runner = ProbeRunner(executor)
        assert runner.probe(identities[0], identities[1], tcp80, mode) == Outcome.REACHABLE
        assert executor.attempts_for("x/a", "y/b", tcp80) == 1

    def test_negative_retries_rejected(self, executor):
        with pytest.raises(ConfigurationError):
            ProbeRunner(executor, retries=-1)
