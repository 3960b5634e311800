"""Rail corridor geometry and path interpolation.

The path traces the Down Main North line from south of Cardiff through
to past Kotara (OpenStreetMap ways 432724771, 432724768, 174265326,
173241836, 1086583989; data (c) OpenStreetMap contributors, ODbL).

Distances are planar Euclidean distances in raw coordinate degrees, not
geodesic metres. Over a corridor this short the distortion is
negligible and normalized positions are what consumers use.
"""

import math
from bisect import bisect_left
from collections.abc import Sequence

from corridor_mcp.geometry.stations import CARDIFF, KOTARA

LatLng = tuple[float, float]

# Runs south -> north: approach to Cardiff -> Cardiff -> Kotara -> departure
RAIL_PATH: list[LatLng] = [
    (-32.9434264, 151.6668132),
    (-32.9432879, 151.6681841),
    (-32.9432281, 151.6687582),
    (-32.9431949, 151.6690146),
    (-32.9431621, 151.6692311),
    (-32.9431287, 151.6693889),
    (-32.9430827, 151.6695713),
    (-32.9430198, 151.6697686),
    (-32.9429572, 151.6699479),
    (-32.9428732, 151.6701370),
    (-32.9427803, 151.6703301),
    (-32.9426547, 151.6705431),
    (-32.9425748, 151.6706729),
    (-32.9424059, 151.6708960),
    (-32.9422577, 151.6710587),
    (-32.9421347, 151.6711815),
    (-32.9419884, 151.6713172),
    (-32.9417590, 151.6715059),
    (-32.9412598, 151.6718906),
    (-32.9411714, 151.6719625),
    (-32.9410026, 151.6721046),
    (-32.9408704, 151.6722257),
    (-32.9407153, 151.6723847),
    (-32.9406249, 151.6724923),
    (-32.9404923, 151.6726653),
    (-32.9403706, 151.6728459),
    (-32.9402229, 151.6731053),
    (-32.9401401, 151.6732790),
    (-32.9400604, 151.6734689),
    (-32.9399925, 151.6736631),
    (-32.9399389, 151.6738474),
    (-32.9399169, 151.6739291),
    (-32.9398549, 151.6742141),
    (-32.9397921, 151.6746177),
    (-32.9394362, 151.6773407),
    (-32.9393791, 151.6778491),
    (-32.9393529, 151.6783692),
    (-32.9393586, 151.6788311),
    (-32.9393908, 151.6793428),
    (-32.9394574, 151.6798127),
    (-32.9395486, 151.6802978),
    (-32.9396612, 151.6807431),
    (-32.9398132, 151.6812140),
    (-32.9400007, 151.6816865),
    (-32.9401106, 151.6819303),
    (-32.9401952, 151.6820975),
    (-32.9403370, 151.6823614),
    (-32.9404302, 151.6825208),
    (-32.9406727, 151.6828957),
    (-32.9409575, 151.6832934),
    (-32.9412683, 151.6836761),
    (-32.9421366, 151.6845923),
    (-32.9432321, 151.6857501),
    (-32.9435605, 151.6861066),
    (-32.9439694, 151.6866098),
    (-32.9441074, 151.6868663),
    (-32.9442141, 151.6871027),
    (-32.9443963, 151.6875990),
    (-32.9444378, 151.6877591),
    (-32.9445233, 151.6880880),
    (-32.9445870, 151.6884115),
    (-32.9446326, 151.6887393),
    (-32.9446590, 151.6890490),
    (-32.9446713, 151.6893257),
    (-32.9446702, 151.6896357),
    (-32.9446427, 151.6899986),
    (-32.9445880, 151.6903892),
    (-32.9444858, 151.6908285),
    (-32.9443981, 151.6911379),
    (-32.9442243, 151.6915878),
    (-32.9440490, 151.6919552),
    (-32.9437356, 151.6925028),
    (-32.9435133, 151.6928540),
    (-32.9430307, 151.6936559),
    (-32.9427839, 151.6941147),
    (-32.9427020, 151.6943088),
    (-32.9425605, 151.6946441),
    (-32.9424125, 151.6950622),
    (-32.9423404, 151.6952890),
    (-32.9422332, 151.6956487),
    (-32.9421263, 151.6960218),
    (-32.9419355, 151.6966805),
    (-32.9418716, 151.6969005),
    (-32.9417591, 151.6972478),
    (-32.9415173, 151.6978930),
    (-32.9414025, 151.6982145),
    (-32.9413091, 151.6985301),
    (-32.9412660, 151.6986943),
    (-32.9412176, 151.6989054),
    (-32.9411780, 151.6991083),
    (-32.9411431, 151.6992998),
    (-32.9410682, 151.6996555),
    (-32.9409954, 151.6999791),
    (-32.9409176, 151.7002734),
    (-32.9408924, 151.7003672),
]

# Index of the nearest track point to each station
CARDIFF_PATH_INDEX = 1
KOTARA_PATH_INDEX = 60


def compute_cumulative_distances(path: Sequence[LatLng]) -> list[float]:
    """Cumulative planar distance from the first point to each point."""
    distances = [0.0]
    for (lat1, lng1), (lat2, lng2) in zip(path, path[1:]):
        distances.append(distances[-1] + math.hypot(lat2 - lat1, lng2 - lng1))
    return distances


class CorridorGeometry:
    """An ordered track path with cumulative-distance indexing.

    Stateless after construction; every method is a pure function of the
    path and station anchors given here.
    """

    def __init__(self, path: Sequence[LatLng], station_indices: dict[str, int]):
        if not path:
            raise ValueError("Corridor path needs at least one point")
        self.path: list[LatLng] = list(path)
        self.cumulative = compute_cumulative_distances(self.path)
        self.total_length = self.cumulative[-1]
        self._station_indices = dict(station_indices)

    def interpolate(self, t: float) -> LatLng:
        """Point on the path at normalized position t (clamped to [0, 1])."""
        if self.total_length == 0:
            return self.path[0]

        target = max(0.0, min(1.0, t)) * self.total_length
        i = bisect_left(self.cumulative, target)
        if i == 0:
            return self.path[0]
        if i >= len(self.cumulative):
            return self.path[-1]

        seg_start = self.cumulative[i - 1]
        seg_end = self.cumulative[i]
        seg_t = 0.0 if seg_end == seg_start else (target - seg_start) / (seg_end - seg_start)
        lat1, lng1 = self.path[i - 1]
        lat2, lng2 = self.path[i]
        return (lat1 + (lat2 - lat1) * seg_t, lng1 + (lng2 - lng1) * seg_t)

    def distance_of(self, station_id: str) -> float:
        """Distance along the path to a station's anchor point.

        Raises:
            KeyError: If the station is not anchored on this path.
        """
        return self.cumulative[self._station_indices[station_id]]

    def position_of(self, station_id: str) -> float:
        """Normalized position of a station's anchor point."""
        return self.normalize(self.distance_of(station_id))

    def anchor_of(self, station_id: str) -> LatLng:
        return self.path[self._station_indices[station_id]]

    def normalize(self, distance: float) -> float:
        if self.total_length == 0:
            return 0.0
        return distance / self.total_length

    def project(self, lat: float, lng: float) -> float:
        """Normalized position of the on-path point nearest to (lat, lng)."""
        best_dist = math.inf
        best_along = 0.0
        for i in range(1, len(self.path)):
            lat1, lng1 = self.path[i - 1]
            lat2, lng2 = self.path[i]
            d_lat, d_lng = lat2 - lat1, lng2 - lng1
            seg_len_sq = d_lat * d_lat + d_lng * d_lng
            u = 0.0
            if seg_len_sq > 0:
                u = ((lat - lat1) * d_lat + (lng - lng1) * d_lng) / seg_len_sq
                u = max(0.0, min(1.0, u))
            dist = math.hypot(lat - (lat1 + u * d_lat), lng - (lng1 + u * d_lng))
            if dist < best_dist:
                best_dist = dist
                best_along = self.cumulative[i - 1] + u * (self.cumulative[i] - self.cumulative[i - 1])
        return self.normalize(best_along)


CORRIDOR_GEOMETRY = CorridorGeometry(
    RAIL_PATH,
    {CARDIFF.id: CARDIFF_PATH_INDEX, KOTARA.id: KOTARA_PATH_INDEX},
)
