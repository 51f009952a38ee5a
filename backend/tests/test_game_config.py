"""RTP, debug override and simulation mode configuration tests."""
import pytest

from crashgame.config import settings
from crashgame.errors import InvalidArgument
from crashgame.logic.game_config import DebugOverride, GameContext, RTPConfig, SimulationMode
from crashgame.logic.phases import default_phases
from crashgame.storage import MemoryStore


class TestRTPConfig:
    def test_default(self):
        rtp = RTPConfig(MemoryStore())
        assert rtp.rtp_factor == settings.default_rtp_factor
        assert rtp.rtp_percentage == pytest.approx(97.0)

    @pytest.mark.asyncio
    async def test_set_factor(self):
        rtp = RTPConfig(MemoryStore())
        assert await rtp.set_rtp_factor(0.95) == 0.95

    @pytest.mark.asyncio
    async def test_set_percentage(self):
        rtp = RTPConfig(MemoryStore())
        await rtp.set_rtp_percentage(90)
        assert rtp.rtp_factor == pytest.approx(0.90)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("factor", [0, -0.1, 1.01, float("nan")])
    async def test_invalid_factor_rejected_and_unchanged(self, factor):
        rtp = RTPConfig(MemoryStore())
        with pytest.raises(InvalidArgument):
            await rtp.set_rtp_factor(factor)
        assert rtp.rtp_factor == settings.default_rtp_factor

    @pytest.mark.asyncio
    async def test_reset_to_default(self):
        rtp = RTPConfig(MemoryStore())
        await rtp.set_rtp_factor(0.5)
        assert await rtp.reset_to_default() == settings.default_rtp_factor


class TestDebugOverride:
    def test_inactive_by_default(self):
        debug = DebugOverride(MemoryStore())
        assert not debug.is_active
        assert debug.crash_point_override is None

    @pytest.mark.asyncio
    async def test_set_and_clear(self):
        debug = DebugOverride(MemoryStore())
        await debug.set_override(2.5)
        assert debug.is_active
        assert debug.crash_point_override == 2.5
        await debug.clear_override()
        assert not debug.is_active

    @pytest.mark.asyncio
    async def test_bounds_inclusive(self):
        debug = DebugOverride(MemoryStore())
        assert await debug.set_override(1.0) == 1.0
        assert await debug.set_override(10000) == 10000

    @pytest.mark.asyncio
    async def test_below_minimum_rejected(self):
        debug = DebugOverride(MemoryStore())
        with pytest.raises(InvalidArgument, match="Minimum crash point is 1.00x"):
            await debug.set_override(0.99)
        assert not debug.is_active

    @pytest.mark.asyncio
    async def test_above_maximum_rejected(self):
        debug = DebugOverride(MemoryStore())
        with pytest.raises(InvalidArgument, match="Maximum crash point is 10000x"):
            await debug.set_override(10000.01)


class TestSimulationMode:
    def test_defaults(self):
        simulation = SimulationMode(MemoryStore())
        assert simulation.enabled is settings.simulation_enabled_default
        assert simulation.update_interval_ms == settings.simulation_interval_ms_default

    @pytest.mark.asyncio
    async def test_enable_disable(self):
        simulation = SimulationMode(MemoryStore())
        await simulation.enable()
        assert simulation.enabled
        await simulation.disable()
        assert not simulation.enabled

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interval", [10, 250, 1000])
    async def test_interval_bounds_inclusive(self, interval):
        simulation = SimulationMode(MemoryStore())
        assert await simulation.set_update_interval(interval) == interval

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interval", [9, 1001, 0, -5])
    async def test_interval_out_of_bounds_rejected(self, interval):
        simulation = SimulationMode(MemoryStore())
        with pytest.raises(InvalidArgument):
            await simulation.set_update_interval(interval)
        assert simulation.update_interval_ms == settings.simulation_interval_ms_default

    @pytest.mark.asyncio
    async def test_reset_to_defaults(self):
        simulation = SimulationMode(MemoryStore())
        await simulation.enable()
        await simulation.set_update_interval(500)
        await simulation.reset_to_defaults()
        assert simulation.enabled is settings.simulation_enabled_default
        assert simulation.update_interval_ms == settings.simulation_interval_ms_default


class TestGameContext:
    @pytest.mark.asyncio
    async def test_load_restores_every_config(self):
        storage = MemoryStore()
        original = GameContext(storage)
        await original.rtp.set_rtp_factor(0.9)
        await original.debug.set_override(3.0)
        await original.simulation.enable()
        await original.simulation.set_update_interval(200)
        await original.phases.add_phase(0)

        restored = GameContext(storage)
        await restored.load()
        assert restored.rtp.rtp_factor == 0.9
        assert restored.debug.crash_point_override == 3.0
        assert restored.simulation.enabled
        assert restored.simulation.update_interval_ms == 200
        assert restored.phases.phases == original.phases.phases

    @pytest.mark.asyncio
    async def test_load_from_empty_storage_keeps_defaults(self):
        context = GameContext(MemoryStore())
        await context.load()
        assert context.rtp.rtp_factor == settings.default_rtp_factor
        assert not context.debug.is_active
        assert context.phases.phases == default_phases()

    @pytest.mark.asyncio
    async def test_corrupt_blobs_keep_defaults(self):
        storage = MemoryStore()
        await storage.save(RTPConfig.STORAGE_KEY, {"rtpFactor": 7})
        await storage.save(DebugOverride.STORAGE_KEY, {"crashPointOverride": 0.2})
        await storage.save(SimulationMode.STORAGE_KEY, {"enabled": "yes", "updateInterval": 100})
        context = GameContext(storage)
        await context.load()
        assert context.rtp.rtp_factor == settings.default_rtp_factor
        assert not context.debug.is_active
        assert context.simulation.enabled is settings.simulation_enabled_default
