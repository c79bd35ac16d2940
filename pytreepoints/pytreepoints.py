"""
PyTreePoints - Trunk, height and canopy metrics from single-tree point clouds
-----------------------------------------------------------------------------
Copyright: 2018, Jan Zörner
Licence: GNU GPLv3
"""

import time
import logging
import threading
from pathlib import Path
from collections import namedtuple

import numpy as np
import pandas as pd

from scipy.spatial.distance import cdist

from shapely.geometry import MultiPoint, Polygon

import laspy
from laspy.errors import LaspyException

from pytreepoints import _trunk_numba
from pytreepoints import _hull_numba
from pytreepoints import _farthest_pair_numba

logger = logging.getLogger(__name__)

# Range of z-values per bucket
ZBUCKET_RANGE = 0.1
TRUNK_BUCKET_DIFF_THRESH = 0.2
TRUNK_BUCKET_MAXDIFF_THRESH = 5.
MAX_LINE_LENGTH = 255

Point3D = namedtuple('Point3D', ['x', 'y', 'z'])
TreeMetrics = namedtuple('TreeMetrics',
                         ['trunkdiam', 'treeheight', 'maxbranchdiam'])
TrunkLocation = namedtuple('TrunkLocation', ['bucket', 'bush_size'])


class TreePointsError(Exception):
    """ Base class of all point cloud processing errors """
    pass


class IngestionError(TreePointsError):
    """ Raised when a point cloud file cannot be read or parsed """
    pass


class AllocationError(TreePointsError):
    """ Raised when the point or bucket stores cannot be allocated """
    pass


class TrunkNotFoundError(TreePointsError):
    """ Raised when no bucket satisfies the trunk heuristic

    Attributes
    ----------
    lengths :   ndarray
                number of points per bucket, lowest bucket first
    bucket :    int
                bucket at which the search gave up
    """

    def __init__(self, message, lengths=None, bucket=None):
        super().__init__(message)
        self.lengths = lengths
        self.bucket = bucket


class HeightSearchExhaustedError(TreePointsError):
    """ Raised when no ground point is found below the trunk

    Attributes
    ----------
    lengths :   ndarray
                number of points per bucket, lowest bucket first
    bucket :    int
                trunk bucket the search started from
    """

    def __init__(self, message, lengths=None, bucket=None):
        super().__init__(message)
        self.lengths = lengths
        self.bucket = bucket


class EnclosingCircle(namedtuple('EnclosingCircle', ['cx', 'cy', 'radius'])):
    """ Circle around the centroid of a point set through its farthest
    member. Not the minimal enclosing circle. """

    __slots__ = ()

    @property
    def diameter(self):
        return 2. * self.radius

    def padded(self, factor):
        """ Circle with the radius enlarged by `factor` (e.g. 0.2 for +20%) """
        return EnclosingCircle(self.cx, self.cy, self.radius * (1. + factor))


class Unprocessed:
    """ Metrics have not been computed yet """

    def __repr__(self):
        return 'Unprocessed()'


class Processed:
    """ Metrics computed; `failures` maps metric names that could not be
    computed to the error raised for them """

    def __init__(self, metrics, failures=None):
        self.metrics = metrics
        self.failures = failures if failures else {}

    def __repr__(self):
        return f'Processed({self.metrics!r}, failures={self.failures!r})'


class Failed:
    """ Processing failed for all metrics """

    def __init__(self, error):
        self.error = error

    def __repr__(self):
        return f'Failed({self.error!r})'


class _MetricsCache:
    """ Compute-once holder for the tree metrics of one point cloud """

    def __init__(self, compute):
        self._compute = compute
        self._lock = threading.Lock()
        self.state = Unprocessed()

    def evaluate(self):
        if isinstance(self.state, Unprocessed):
            with self._lock:
                if isinstance(self.state, Unprocessed):
                    self.state = self._compute()
        return self.state

    def get(self, name):
        state = self.evaluate()
        if isinstance(state, Failed):
            raise state.error
        if name in state.failures:
            raise state.failures[name]
        return getattr(state.metrics, name)


class BucketIndex:

    def __init__(self, points, z_range=ZBUCKET_RANGE):
        """ Partition points into horizontal slabs of fixed height

        Parameters
        ----------
        points :    ndarray
                    nx3 array of x, y, z coordinates
        z_range :   float, optional
                    height of each slab

        Example
        -------

        buckets = BucketIndex(points, z_range=0.1)
        trunk_xy = buckets[12][:, :2]
        """
        if z_range <= 0:
            raise ValueError('Bucket range must be positive.')
        if len(points) == 0:
            raise ValueError('Cannot bucket an empty point set.')

        self.z_range = float(z_range)
        zs = points[:, 2]
        self.min_z = float(zs.min())
        self.max_z = float(zs.max())
        self.num_buckets = max(
            1, int(np.ceil((self.max_z - self.min_z) / self.z_range)))

        bucket = np.floor((zs - self.min_z) / self.z_range).astype(np.int64)
        # points at max_z belong to the top bucket
        bucket = np.clip(bucket, 0, self.num_buckets - 1)

        order = np.argsort(bucket, kind='stable')
        self.points = points[order]
        self.points.flags.writeable = False
        self.lengths = np.bincount(bucket, minlength=self.num_buckets)
        self.offsets = np.concatenate(([0], np.cumsum(self.lengths)))

    def __len__(self):
        return self.num_buckets

    def __getitem__(self, idx):
        if idx < 0:
            idx += self.num_buckets
        if not 0 <= idx < self.num_buckets:
            raise IndexError('Bucket index out of range.')
        return self.points[self.offsets[idx]:self.offsets[idx + 1]]

    def __iter__(self):
        for idx in range(self.num_buckets):
            yield self[idx]

    def z_bounds(self, idx):
        ''' Lower and upper z-value of a bucket

        Returns
        -------
        tuple
            z_min (inclusive), z_max (exclusive)
        '''
        z_min = self.min_z + idx * self.z_range
        return z_min, z_min + self.z_range

    def above(self, idx):
        """ Points of all buckets strictly above bucket `idx` """
        return self.points[self.offsets[idx + 1]:]

    def to_frame(self):
        """ Bucket histogram as dataframe with z_min, z_max and points """
        z_min = self.min_z + np.arange(self.num_buckets) * self.z_range
        return pd.DataFrame({
            'z_min': z_min,
            'z_max': z_min + self.z_range,
            'points': self.lengths
        })


def enclosing_circle(xy):
    """ Approximate enclosing circle of 2D points: centroid plus distance to
    the farthest point

    Parameters
    ----------
    xy :    ndarray
            nx2 array of x, y coordinates

    Returns
    -------
    EnclosingCircle
        centre and radius
    """
    xy = np.asarray(xy, dtype=np.float64)
    centroid = xy.mean(axis=0)
    distances = cdist(xy, centroid[np.newaxis], 'sqeuclidean')
    return EnclosingCircle(float(centroid[0]), float(centroid[1]),
                           float(np.sqrt(distances.max())))


def convex_hull(xy):
    """ Convex hull of 2D points with a Graham scan

    Parameters
    ----------
    xy :    ndarray
            nx2 array of x, y coordinates

    Returns
    -------
    ndarray
        indices of the extreme points in counter-clockwise order, starting
        at the lowest point (lowest x on ties). All indices for less than
        three points.
    """
    xy = np.asarray(xy, dtype=np.float64)
    if len(xy) < 3:
        return np.arange(len(xy))

    xs = np.ascontiguousarray(xy[:, 0])
    ys = np.ascontiguousarray(xy[:, 1])
    anchor = np.lexsort((xs, ys))[0]

    dx = xs - xs[anchor]
    dy = ys - ys[anchor]
    angle = np.mod(np.arctan2(dy, dx), 2 * np.pi)
    dist = dx ** 2 + dy ** 2

    order = np.lexsort((dist, angle))
    order = np.concatenate(([anchor], order[order != anchor]))

    hull = _hull_numba._graham_scan(xs, ys, order)
    if len(hull) < 3:
        return hull
    return _hull_numba._prune_hull(xs, ys, hull)


def farthest_pair(xy, hull=None, exact=False):
    """ Farthest pair of points on the convex hull

    The neighbourhood hill-climb may stop at a local maximum on irregular
    hulls, so its pair is confirmed by the antipodal sweep and replaced if
    the sweep finds a longer one.

    Parameters
    ----------
    xy :     ndarray
             nx2 array of x, y coordinates
    hull :   ndarray, optional
             hull indices as returned by `convex_hull`, computed if missing
    exact :  bool, optional
             set to True to skip the hill-climb and only sweep the antipodal
             pairs

    Returns
    -------
    tuple
        index of the first point, index of the second point, distance
    """
    xy = np.asarray(xy, dtype=np.float64)
    if hull is None:
        hull = convex_hull(xy)
    if len(hull) == 0:
        raise ValueError('Cannot search an empty point set.')
    if len(hull) == 1:
        return int(hull[0]), int(hull[0]), 0.

    xs = np.ascontiguousarray(xy[hull, 0])
    ys = np.ascontiguousarray(xy[hull, 1])
    if len(hull) == 2:
        i, j, d2 = 0, 1, (xs[0] - xs[1]) ** 2 + (ys[0] - ys[1]) ** 2
    elif exact:
        i, j, d2 = _farthest_pair_numba._antipodal_sweep(xs, ys)
    else:
        i, j, d2 = _farthest_pair_numba._farthest_pair(xs, ys)
        si, sj, sd2 = _farthest_pair_numba._antipodal_sweep(xs, ys)
        if sd2 > d2:
            logger.debug(f'Hill-climb stopped at {np.sqrt(d2):.6f}, '
                         f'antipodal sweep found {np.sqrt(sd2):.6f}')
            i, j, d2 = si, sj, sd2
    return int(hull[i]), int(hull[j]), float(np.sqrt(d2))


def _parse_line(line, fname, lineno, max_line_length):
    """ Parse a `<x>, <y>, <z>` line into a Point3D """
    text = line.rstrip('\r\n')
    if len(text) > max_line_length:
        raise IngestionError(
            f'{fname}:{lineno}: line exceeds {max_line_length} characters')
    fields = text.split(',')
    if len(fields) != 3:
        raise IngestionError(
            f'{fname}:{lineno}: expected 3 coordinates, got {len(fields)}')
    try:
        point = Point3D(*(float(field) for field in fields))
    except ValueError as e:
        raise IngestionError(f'{fname}:{lineno}: {e}') from e
    if not all(np.isfinite(point)):
        raise IngestionError(f'{fname}:{lineno}: non-finite coordinate')
    return point


class PointCloud:

    def __init__(self, points, z_range=ZBUCKET_RANGE,
                 diff_thresh=TRUNK_BUCKET_DIFF_THRESH,
                 maxdiff_thresh=TRUNK_BUCKET_MAXDIFF_THRESH,
                 drop_above=True, exact_canopy=False, name=None):
        """ PointCloud class

        Parameters
        ----------
        points :          ndarray or sequence
                          (x, y, z) triples of a single tree
        z_range :         float, optional
                          height of each bucket
        diff_thresh :     float, optional
                          maximum relative size change between trunk buckets
        maxdiff_thresh :  float, optional
                          relative drop from the widest crown bucket to the
                          trunk
        drop_above :      bool, optional
                          set to False if the drop has to stay below
                          `maxdiff_thresh` rather than exceed it
        exact_canopy :    bool, optional
                          set to True to measure the canopy with an exact
                          antipodal sweep instead of the hill-climb
        name :            str, optional
                          label used in log messages

        Example
        -------

        PC = PointCloud.from_file('data/tree1.txt')
        PC.get_trunkdiam()
        PC.get_height()
        PC.get_maxbranchdiam()
        """
        try:
            points = np.array(points, dtype=np.float64)
        except MemoryError as e:
            raise AllocationError('Cannot allocate point store.') from e

        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError('Points have to be an nx3 array of x, y, z.')
        if len(points) == 0:
            raise ValueError('Point cloud is empty.')
        if not np.isfinite(points).all():
            raise ValueError('Point cloud contains non-finite coordinates.')

        points.flags.writeable = False
        self.points = points
        self.name = name if name else 'point cloud'
        self.max_z = float(points[:, 2].max())
        self.min_z = float(points[:, 2].min())

        self.diff_thresh = float(diff_thresh)
        self.maxdiff_thresh = float(maxdiff_thresh)
        self.drop_above = bool(drop_above)
        self.exact_canopy = bool(exact_canopy)

        try:
            self.buckets = BucketIndex(points, z_range)
        except MemoryError as e:
            raise AllocationError('Cannot allocate height buckets.') from e

        self._metrics = _MetricsCache(self._process)

    @classmethod
    def from_txt(cls, fname, max_line_length=MAX_LINE_LENGTH, **kwargs):
        """ Load a text file with one `<x>, <y>, <z>` point per line

        Parameters
        ----------
        fname :             str
                            path to the text file
        max_line_length :   int, optional
                            lines longer than this are rejected
        kwargs :            passed on to PointCloud

        Raises
        ------
        IngestionError
            file cannot be opened or read, or a line is malformed
        """
        points = []
        try:
            with open(fname, 'r') as infile:
                for lineno, line in enumerate(infile, 1):
                    if not line.strip():
                        continue
                    points.append(
                        _parse_line(line, fname, lineno, max_line_length))
        except OSError as e:
            raise IngestionError(f'Cannot read {fname}: {e}') from e
        except UnicodeDecodeError as e:
            raise IngestionError(f'{fname}: not a text file: {e}') from e
        except MemoryError as e:
            raise AllocationError(f'Cannot allocate points of {fname}') from e

        if not points:
            raise IngestionError(f'{fname} contains no points')

        kwargs.setdefault('name', str(fname))
        return cls(points, **kwargs)

    @classmethod
    def from_las(cls, fname, **kwargs):
        """ Load a LAS/LAZ (LiDAR point cloud) file

        Parameters
        ----------
        fname :   str
                  path to .las or .laz-file
        kwargs :  passed on to PointCloud
        """
        # only meaningful for text files
        kwargs.pop('max_line_length', None)
        try:
            las = laspy.read(str(fname))
        except (OSError, LaspyException) as e:
            raise IngestionError(f'Cannot read {fname}: {e}') from e

        points = np.array((las.x, las.y, las.z), dtype=np.float64).transpose()
        if len(points) == 0:
            raise IngestionError(f'{fname} contains no points')

        kwargs.setdefault('name', str(fname))
        return cls(points, **kwargs)

    @classmethod
    def from_file(cls, fname, **kwargs):
        """ Load a point cloud file, LAS/LAZ by suffix, text otherwise """
        if Path(fname).suffix.lower() in ('.las', '.laz'):
            return cls.from_las(fname, **kwargs)
        return cls.from_txt(fname, **kwargs)

    def __len__(self):
        return len(self.points)

    def __iter__(self):
        for point in self.points:
            yield Point3D(*point)

    @property
    def state(self):
        """ Unprocessed, Processed or Failed """
        return self._metrics.state

    def locate_trunk(self):
        ''' Find the topmost trunk bucket

        Returns
        -------
        TrunkLocation
            bucket index and number of points above it (the bush)

        Raises
        ------
        TrunkNotFoundError
            no bucket satisfies the trunk heuristic
        '''
        lengths = self.buckets.lengths
        trunk = _trunk_numba._locate_trunk(
            lengths, self.diff_thresh, self.maxdiff_thresh, self.drop_above)
        if trunk < 0:
            raise TrunkNotFoundError(
                f'No trunk bucket in {self.name} '
                f'({len(lengths)} buckets: {lengths.tolist()})',
                lengths=lengths.copy(), bucket=0)
        bush_size = int(lengths[trunk + 1:].sum())
        return TrunkLocation(int(trunk), bush_size)

    def trunk_circle(self, trunk=None):
        """ Approximate enclosing circle of the trunk bucket """
        if trunk is None:
            trunk = self.locate_trunk().bucket
        return enclosing_circle(self.buckets[trunk][:, :2])

    def ground_point(self, trunk=None, circle=None):
        ''' Find the ground next to the trunk base

        Parameters
        ----------
        trunk :   int, optional
                  topmost trunk bucket
        circle :  EnclosingCircle, optional
                  trunk circle before padding

        Returns
        -------
        Point3D
            point closest to the padded trunk circle in the transition
            bucket from trunk to ground

        Raises
        ------
        HeightSearchExhaustedError
            no bucket below the trunk holds a point next to the circle
        '''
        if trunk is None:
            trunk = self.locate_trunk().bucket
        if circle is None:
            circle = self.trunk_circle(trunk)
        tolerance = circle.padded(self.diff_thresh)

        bpoints = self.buckets.points
        bucket, idx = _trunk_numba._ground_search(
            np.ascontiguousarray(bpoints[:, 0]),
            np.ascontiguousarray(bpoints[:, 1]),
            self.buckets.offsets, trunk,
            tolerance.cx, tolerance.cy, tolerance.radius, self.diff_thresh
        )
        if idx < 0:
            raise HeightSearchExhaustedError(
                f'No ground point below trunk bucket {trunk} in {self.name}',
                lengths=self.buckets.lengths.copy(), bucket=trunk)
        return Point3D(*bpoints[idx])

    def canopy_points(self, trunk=None):
        """ Points of all buckets above the trunk (the bush) """
        if trunk is None:
            trunk = self.locate_trunk().bucket
        return self.buckets.above(trunk)

    def canopy_hull(self, trunk=None):
        ''' Convex hull of the canopy projected onto the x-y plane

        Returns
        -------
        ndarray
            nx2 array of hull vertices in counter-clockwise order
        '''
        xy = self.canopy_points(trunk)[:, :2]
        return xy[convex_hull(xy)]

    def canopy_polygon(self, trunk=None):
        """ Canopy outline as shapely Polygon, a LineString or Point if the
        canopy has less than three distinct projected points """
        hull = self.canopy_hull(trunk)
        if len(hull) < 3:
            return MultiPoint(hull).convex_hull
        return Polygon(hull)

    def _canopy_diameter(self, trunk):
        xy = self.canopy_points(trunk)[:, :2]
        _, _, distance = farthest_pair(xy, convex_hull(xy),
                                       exact=self.exact_canopy)
        return distance

    def _process(self):
        """ Compute all metrics, trunk diameter and height independently """
        timeit = '{}: {:.3f}s'

        tt = time.time()
        try:
            trunk = self.locate_trunk()
        except TrunkNotFoundError as e:
            logger.warning(str(e))
            return Failed(e)
        logger.info(timeit.format('Trunk search', time.time() - tt))
        logger.debug(f'Trunk top at bucket {trunk.bucket} '
                     f'z={self.buckets.z_bounds(trunk.bucket)}, '
                     f'bush size {trunk.bush_size}')

        failures = {}

        tt = time.time()
        circle = self.trunk_circle(trunk.bucket)
        trunkdiam = circle.diameter
        try:
            ground = self.ground_point(trunk.bucket, circle)
            treeheight = self.max_z - ground.z
        except HeightSearchExhaustedError as e:
            logger.warning(str(e))
            failures['treeheight'] = e
            treeheight = None
        logger.info(timeit.format('Trunk and height', time.time() - tt))

        tt = time.time()
        maxbranchdiam = self._canopy_diameter(trunk.bucket)
        logger.info(timeit.format('Canopy diameter', time.time() - tt))

        return Processed(TreeMetrics(trunkdiam, treeheight, maxbranchdiam),
                         failures)

    @property
    def metrics(self):
        ''' All metrics, failed ones set to None

        Raises
        ------
        TrunkNotFoundError
            no trunk found, none of the metrics can be computed
        '''
        state = self._metrics.evaluate()
        if isinstance(state, Failed):
            raise state.error
        return state.metrics

    def get_trunkdiam(self):
        """ Diameter of the trunk at its top bucket """
        return self._metrics.get('trunkdiam')

    def get_height(self):
        """ Height from the ground next to the trunk to the highest point """
        return self._metrics.get('treeheight')

    def get_maxbranchdiam(self):
        """ Largest horizontal span of the canopy """
        return self._metrics.get('maxbranchdiam')


def process_files(fnames, **kwargs):
    """ Compute the metrics for several point cloud files. Failing files are
    reported in the `error` column and do not stop the batch.

    Parameters
    ----------
    fnames :   list
               paths to text or LAS/LAZ files
    kwargs :   passed on to PointCloud

    Returns
    -------
    DataFrame
        one row per file with points, trunkdiam, treeheight, maxbranchdiam
        and error
    """
    rows = []
    for fname in fnames:
        row = {'file': str(fname), 'points': 0, 'trunkdiam': np.nan,
               'treeheight': np.nan, 'maxbranchdiam': np.nan, 'error': None}
        rows.append(row)

        try:
            PC = PointCloud.from_file(fname, **kwargs)
        except (IngestionError, AllocationError) as e:
            logger.error(f'Skipping {fname}: {e}')
            row['error'] = f'{type(e).__name__}: {e}'
            continue
        row['points'] = len(PC)

        errors = []
        for column, getter in (('trunkdiam', PC.get_trunkdiam),
                               ('treeheight', PC.get_height),
                               ('maxbranchdiam', PC.get_maxbranchdiam)):
            try:
                row[column] = getter()
            except (TrunkNotFoundError, HeightSearchExhaustedError) as e:
                message = f'{type(e).__name__}: {e}'
                if message not in errors:
                    errors.append(message)
        if errors:
            row['error'] = '; '.join(errors)

    results = pd.DataFrame(rows, columns=['file', 'points', 'trunkdiam',
                                          'treeheight', 'maxbranchdiam',
                                          'error'])
    # keep None for successful files, string dtype would turn it into NaN
    results['error'] = pd.Series([row['error'] for row in rows],
                                 index=results.index, dtype=object)
    return results
