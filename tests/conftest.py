"""Shared fixtures: a small corridor GTFS feed.

Service days used in tests: 2025-06-02 (Monday, weekday service),
2025-06-07 (Saturday) and 2025-06-09 (Monday, weekday service removed).
"""

from pathlib import Path

import pytest

from corridor_mcp.data.gtfs_loader import GTFSLoader
from corridor_mcp.geometry.stations import clear_platforms


def write_corridor_gtfs(gtfs_dir: Path) -> Path:
    """Write a minimal GTFS feed touching the corridor into gtfs_dir."""
    gtfs_dir.mkdir(parents=True, exist_ok=True)

    (gtfs_dir / "agency.txt").write_text(
        "agency_id,agency_name,agency_url,agency_timezone\n"
        "NSWT,NSW TrainLink,https://transportnsw.info,Australia/Sydney\n"
    )

    (gtfs_dir / "routes.txt").write_text(
        "route_id,agency_id,route_short_name,route_long_name,route_type,route_color\n"
        "CCN_1a,NSWT,CCN,Central Coast & Newcastle Line,2,D11F2F\n"
        "CCN_1b,NSWT,CCN,Central Coast & Newcastle Line,2,D11F2F\n"
        "HUN_1,NSWT,HUN,Hunter Line,2,833134\n"
        "BMT_1,NSWT,BMT,Blue Mountains Line,2,F99D1C\n"
    )

    (gtfs_dir / "stops.txt").write_text(
        "stop_id,stop_code,stop_name,stop_lat,stop_lon,location_type,parent_station,platform_code\n"
        "200060,,Central Station,-33.8832,151.2070,1,,\n"
        "225521,,Cardiff Station,-32.9432879,151.6681841,1,,\n"
        "2255211,,Cardiff Station Platform 1,-32.9432879,151.6681841,0,225521,1\n"
        "225421,,Kotara Station,-32.9445870,151.6884115,1,,\n"
        "2300,,Newcastle Interchange,-32.9256,151.7600,1,,\n"
    )

    (gtfs_dir / "calendar.txt").write_text(
        "service_id,monday,tuesday,wednesday,thursday,friday,saturday,sunday,start_date,end_date\n"
        "WEEKDAY,1,1,1,1,1,0,0,20250101,20261231\n"
        "WEEKEND,0,0,0,0,0,1,1,20250101,20261231\n"
    )

    (gtfs_dir / "calendar_dates.txt").write_text("service_id,date,exception_type\nWEEKDAY,20250609,2\n")

    (gtfs_dir / "trips.txt").write_text(
        "route_id,service_id,trip_id,trip_headsign,trip_short_name,direction_id,shape_id\n"
        "CCN_1a,WEEKDAY,NC1,Newcastle Interchange,N101,1,S1\n"
        "CCN_1b,WEEKDAY,SY1,Central,S202,0,S2\n"
        "CCN_1a,WEEKDAY,XP1,Newcastle Interchange,X303,1,S1\n"
        "HUN_1,WEEKDAY,HN1,,H404,0,S3\n"
        "BMT_1,WEEKDAY,BM1,Lithgow,B505,0,S4\n"
        "CCN_1a,WEEKEND,WE1,Newcastle Interchange,N606,1,S1\n"
    )

    (gtfs_dir / "stop_times.txt").write_text(
        "trip_id,arrival_time,departure_time,stop_id,stop_sequence,pickup_type,drop_off_type\n"
        # towards Newcastle, calls at Cardiff via its platform child
        "NC1,06:00:00,06:00:00,200060,1,0,0\n"
        "NC1,07:46:00,07:47:00,2255211,20,0,0\n"
        "NC1,07:50:00,07:51:00,225421,21,0,0\n"
        "NC1,08:05:00,08:05:00,2300,23,0,0\n"
        # towards Sydney, after midnight of its service day
        "SY1,25:00:00,25:00:00,2300,1,0,0\n"
        "SY1,25:09:00,25:10:00,225421,2,0,0\n"
        "SY1,25:13:00,25:14:00,225521,3,0,0\n"
        "SY1,27:00:00,27:00:00,200060,4,0,0\n"
        # express, runs through the corridor without stopping
        "XP1,10:00:00,10:00:00,200060,1,0,0\n"
        "XP1,11:46:00,11:46:00,225521,2,1,1\n"
        "XP1,11:50:00,11:50:00,225421,3,1,1\n"
        "XP1,12:05:00,12:05:00,2300,4,0,0\n"
        # only touches Kotara
        "HN1,09:00:00,09:00:00,225421,1,0,0\n"
        "HN1,09:15:00,09:15:00,2300,2,0,0\n"
        # calls at Cardiff but is not a corridor route
        "BM1,13:00:00,13:00:00,225521,1,0,0\n"
        "BM1,13:20:00,13:20:00,200060,2,0,0\n"
        "WE1,14:00:00,14:01:00,225521,1,0,0\n"
        "WE1,14:04:00,14:05:00,225421,2,0,0\n"
    )

    return gtfs_dir


@pytest.fixture(autouse=True)
def platform_registry():
    """Platforms learned from one timetable must not leak into the next test."""
    clear_platforms()
    yield
    clear_platforms()


@pytest.fixture
def corridor_gtfs_dir(tmp_path: Path) -> Path:
    """A GTFS directory with corridor and non-corridor trips."""
    return write_corridor_gtfs(tmp_path / "gtfs")


@pytest.fixture
async def corridor_db(corridor_gtfs_dir: Path, tmp_path: Path) -> Path:
    """The corridor GTFS feed ingested into SQLite."""
    db_path = tmp_path / "gtfs.db"
    await GTFSLoader(db_path).ingest(corridor_gtfs_dir)
    return db_path
