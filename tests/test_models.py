import dataclasses

import pytest

from wayfinder.errors import ErrorInfo, ErrorKind
from wayfinder.models import Coordinate, Destination, NavigationSnapshot, Position


@pytest.mark.parametrize("lat, lon", [(90.5, 0.0), (-91.0, 0.0), (0.0, 180.1), (0.0, -181.0)])
def test_coordinate_rejects_out_of_range(lat, lon):
    with pytest.raises(ValueError):
        Coordinate(lat, lon)


def test_coordinate_is_immutable():
    c = Coordinate(55.75, 37.61)
    with pytest.raises(dataclasses.FrozenInstanceError):
        c.latitude = 1.0


def test_distance_one_degree_of_latitude():
    assert Coordinate(0.0, 0.0).distance_to(Coordinate(1.0, 0.0)) == pytest.approx(111_195, rel=1e-3)


def test_snapshot_to_dict():
    snapshot = NavigationSnapshot(
        position=Position(Coordinate(55.75, 37.61), seq=3),
        destination=Destination(Coordinate(55.76, 37.60), "Red Square"),
        address="Moscow, Russia",
        route=(Coordinate(55.75, 37.61), Coordinate(55.76, 37.60)),
        last_error=ErrorInfo(ErrorKind.NO_ROUTE, "no route", "route"),
    )
    data = snapshot.to_dict()

    assert data["session"] == "uninitialized"
    assert data["position"]["seq"] == 3
    assert data["destination"]["label"] == "Red Square"
    assert data["route"][1] == {"latitude": 55.76, "longitude": 37.60}
    assert data["last_error"] == {"kind": "no_route_found", "message": "no route", "operation": "route"}
    assert "address_seq" not in data
