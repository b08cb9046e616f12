import asyncio
import time

import pytest

from wayfinder.models import Coordinate
from wayfinder.modules.sensors import gps
from wayfinder.modules.sensors.gps import ACCURACY_LIMITS_M, FixFilter, NmeaSensor, parse_fix

GGA = "$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M,46.9,M,,*47"
GGA_NO_FIX = "$GPGGA,123519,4807.038,N,01131.000,E,0,08,0.9,545.4,M,46.9,M,,*46"
RMC = "$GPRMC,123519,A,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*6A"
RMC_VOID = "$GPRMC,123519,V,4807.038,N,01131.000,E,022.4,084.4,230394,003.1,W*7D"


def test_parse_gga_fix():
    coordinate, accuracy = parse_fix(GGA + "\r\n")
    assert coordinate.latitude == pytest.approx(48.1173, abs=1e-4)
    assert coordinate.longitude == pytest.approx(11.516667, abs=1e-4)
    assert accuracy == pytest.approx(4.5)


def test_parse_rmc_fix():
    coordinate, accuracy = parse_fix(RMC)
    assert coordinate.latitude == pytest.approx(48.1173, abs=1e-4)
    assert accuracy is None


@pytest.mark.parametrize("line", [GGA_NO_FIX, RMC_VOID, GGA[:-2] + "48", "garbage", ""])
def test_parse_rejects_lines_without_a_fix(line):
    assert parse_fix(line) is None


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_fix_filter_distance_and_interval():
    clock = FakeClock()
    fix_filter = FixFilter(min_distance_m=50, max_interval_s=10, clock=clock)
    here = Coordinate(55.75, 37.61)

    assert fix_filter.accept(here)

    clock.now += 1
    assert not fix_filter.accept(Coordinate(55.7501, 37.61))  # ~11 m

    clock.now += 1
    assert fix_filter.accept(Coordinate(55.7510, 37.61))  # ~111 m

    clock.now += 10
    assert fix_filter.accept(Coordinate(55.7510, 37.61))


@pytest.mark.asyncio
async def test_permission_follows_port_readability(tmp_path):
    port = tmp_path / "ttyGPS"
    port.write_text("")

    assert await NmeaSensor(str(port), 9600).request_permission()
    assert not await NmeaSensor(str(tmp_path / "missing"), 9600).request_permission()


def test_fix_filter_rejects_imprecise_fixes():
    fix_filter = FixFilter(min_distance_m=50, max_interval_s=10, max_error_m=ACCURACY_LIMITS_M["high"], clock=FakeClock())

    assert not fix_filter.accept(Coordinate(55.75, 37.61), 40.0)
    assert fix_filter.accept(Coordinate(55.75, 37.61), 4.5)
    assert fix_filter.accept(Coordinate(55.76, 37.61))


class FakeSerial:
    """Stands in for serial.Serial; replays queued lines, then idles."""

    lines = []
    open_ports = 0

    def __init__(self, port, baud, timeout=None):
        self.port = port

    def __enter__(self):
        FakeSerial.open_ports += 1
        return self

    def __exit__(self, *exc):
        FakeSerial.open_ports -= 1

    def readline(self):
        if FakeSerial.lines:
            return FakeSerial.lines.pop(0)
        time.sleep(0.01)
        return b""


@pytest.fixture
def fake_serial(monkeypatch):
    FakeSerial.lines = []
    FakeSerial.open_ports = 0
    monkeypatch.setattr(gps.serial, "Serial", FakeSerial)
    return FakeSerial


@pytest.mark.asyncio
async def test_current_fix_skips_noise(fake_serial):
    fake_serial.lines = [b"garbage\r\n", (GGA + "\r\n").encode()]

    coordinate, accuracy = await NmeaSensor("/dev/ttyGPS", 9600).get_current_fix()

    assert coordinate.latitude == pytest.approx(48.1173, abs=1e-4)
    assert fake_serial.open_ports == 0


@pytest.mark.asyncio
async def test_current_fix_without_lock_is_none(fake_serial):
    assert await NmeaSensor("/dev/ttyGPS", 9600, first_fix_timeout_s=0.05).get_current_fix() is None


@pytest.mark.asyncio
async def test_cancelled_current_fix_releases_port(fake_serial):
    sensor = NmeaSensor("/dev/ttyGPS", 9600, first_fix_timeout_s=30)
    task = asyncio.create_task(sensor.get_current_fix())
    await asyncio.sleep(0.05)
    assert fake_serial.open_ports == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    for _ in range(100):
        if fake_serial.open_ports == 0:
            break
        await asyncio.sleep(0.01)
    assert fake_serial.open_ports == 0
