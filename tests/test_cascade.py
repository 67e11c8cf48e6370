"""
Tests for the Cascade Controller

Run with: pytest tests/test_cascade.py -v
"""

import math

import pytest

from control.cascade import CascadeConfig, CascadeController, CascadeLoop
from control.pid import PidConfig
from core.errors import ConfigurationError


def proportional(kp: float = 1.0) -> PidConfig:
    return PidConfig(kp=kp, ki=0.0, kd=0.0, output_min=-100.0, output_max=100.0)


class TestCascadeConfig:

    def test_requires_pid_configs(self):
        with pytest.raises(ConfigurationError):
            CascadeConfig(primary={"kp": 1.0}, secondary=proportional())

    def test_non_finite_scale_rejected(self):
        with pytest.raises(ConfigurationError):
            CascadeConfig(primary=proportional(), secondary=proportional(), secondary_setpoint_scale=math.nan)


class TestCascadeUpdate:
    """Primary output drives the secondary setpoint."""

    def setup_method(self):
        self.cascade = CascadeController(
            CascadeConfig(primary=proportional(), secondary=proportional()),
            primary_setpoint=50.0,
            enabled=True,
        )

    def test_disabled_returns_zero(self):
        cascade = CascadeController(CascadeConfig(primary=proportional(), secondary=proportional()))

        assert cascade.update(40.0, 4.0, 0.1) == 0.0
        assert cascade.get_history() == ()

    def test_series_connection(self):
        # primary: 50 - 40 = 10 -> secondary setpoint 10 -> 10 - 4 = 6
        output = self.cascade.update(40.0, 4.0, 0.1)

        assert output == pytest.approx(6.0)
        assert self.cascade.secondary_setpoint == pytest.approx(10.0)

    def test_setpoint_map(self):
        self.cascade.set_secondary_setpoint_parameters(offset=5.0, scale=2.0)

        output = self.cascade.update(40.0, 4.0, 0.1)

        assert self.cascade.secondary_setpoint == pytest.approx(25.0)
        assert output == pytest.approx(21.0)

    def test_snapshot_and_history(self):
        self.cascade.update(40.0, 4.0, 0.1)

        snapshot = self.cascade.get_state()
        assert snapshot.enabled is True
        assert snapshot.primary_output == pytest.approx(10.0)
        assert snapshot.secondary_output == pytest.approx(6.0)

        entry = self.cascade.get_history()[-1]
        assert entry.primary_measurement == 40.0
        assert entry.secondary_measurement == 4.0

    def test_mode_change_resets(self):
        self.cascade.update(40.0, 4.0, 0.1)
        self.cascade.set_enabled(False)

        assert self.cascade.get_history() == ()
        assert self.cascade.get_state().secondary_output == 0.0

    def test_live_retune_keeps_history(self):
        self.cascade.update(40.0, 4.0, 0.1)

        updated = self.cascade.update_parameters(CascadeLoop.SECONDARY, kp=2.0)

        assert updated.kp == 2.0
        assert self.cascade.config.secondary.kp == 2.0
        assert self.cascade.config.primary.kp == 1.0
        assert len(self.cascade.get_history()) == 1

    def test_get_parameters(self):
        params = self.cascade.get_parameters()

        assert params["primary"]["kp"] == 1.0
        assert params["secondary"]["ki"] == 0.0

    def test_configure_resets(self):
        self.cascade.update(40.0, 4.0, 0.1)

        self.cascade.configure(CascadeConfig(primary=proportional(2.0), secondary=proportional()))

        assert self.cascade.get_history() == ()
        assert self.cascade.config.primary.kp == 2.0

    def test_non_finite_primary_setpoint_rejected(self):
        with pytest.raises(ConfigurationError):
            self.cascade.set_primary_setpoint(math.inf)
