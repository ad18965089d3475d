import pytest

from gaitauth.gait_config import (
    CadenceConfig,
    CollectionConfig,
    GaitConfig,
    InferenceConfig,
    TimerConfig,
)

from fakes import FakeEngine, FakeSensorSource


@pytest.fixture
def fast_cfg() -> GaitConfig:
    return GaitConfig(
        cadence=CadenceConfig(min_steps=5, confirm_window_sec=7.0, timeout_sec=20.0),
        collection=CollectionConfig(window_rows=4, sampling_period_us=50_000),
        timer=TimerConfig(idle_sec=2, collection_sec=2, reset_sec=1, tick_sec=0.01),
        inference=InferenceConfig(cooldown_sec=0.0),
    )


@pytest.fixture
def fake_source() -> FakeSensorSource:
    return FakeSensorSource()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()
