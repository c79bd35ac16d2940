import unittest

import numpy as np

from shapely.geometry import MultiPoint, Point, Polygon

from pytreepoints import convex_hull


def turns(xy, hull):
    """ cross products at each hull vertex (previous, vertex, next) """
    o = xy[np.roll(hull, 1)]
    a = xy[hull]
    b = xy[np.roll(hull, -1)]
    return ((a[:, 0] - o[:, 0]) * (b[:, 1] - o[:, 1]) -
            (a[:, 1] - o[:, 1]) * (b[:, 0] - o[:, 0]))


class TestConvexHull(unittest.TestCase):

    def setUp(self):
        ''' initialize test scenario '''
        self.square = np.array([[0., 0.], [1., 0.], [1., 1.], [0., 1.],
                                [0.5, 0.5]])
        rng = np.random.default_rng(42)
        self.random = rng.uniform(-5., 5., size=(500, 2))

    def test_unit_square(self):
        ''' the interior point is not part of the hull '''
        hull = convex_hull(self.square)
        self.assertEqual(hull.tolist(), [0, 1, 2, 3])

    def test_anchor_lowest_point(self):
        shuffled = self.square[[4, 2, 3, 1, 0]]
        hull = convex_hull(shuffled)
        self.assertEqual(hull[0], 4)
        self.assertEqual(shuffled[hull].tolist(),
                         [[0., 0.], [1., 0.], [1., 1.], [0., 1.]])

    def test_anchor_tie_break(self):
        ''' lowest x among the lowest points '''
        xy = np.array([[2., 0.], [1., 0.], [1.5, 1.]])
        self.assertEqual(convex_hull(xy)[0], 1)

    def test_counter_clockwise(self):
        hull = convex_hull(self.random)
        self.assertTrue(Polygon(self.random[hull]).exterior.is_ccw)

    def test_collinear_points_dropped(self):
        xy = np.array([[0., 0.], [0.5, 0.], [1., 0.], [1., 0.5], [1., 1.],
                       [0.5, 1.], [0., 1.], [0., 0.5], [0.5, 0.5]])
        hull = convex_hull(xy)
        self.assertEqual(sorted(hull.tolist()), [0, 2, 4, 6])

    def test_duplicates(self):
        xy = np.concatenate((self.square, self.square, self.square[:1]))
        hull = convex_hull(xy)
        self.assertEqual(len(hull), 4)
        self.assertEqual(sorted(map(tuple, xy[hull].tolist())),
                         [(0., 0.), (0., 1.), (1., 0.), (1., 1.)])

    def test_less_than_three_points(self):
        self.assertEqual(convex_hull(np.zeros((0, 2))).tolist(), [])
        self.assertEqual(convex_hull([[1., 2.]]).tolist(), [0])
        self.assertEqual(convex_hull([[1., 2.], [3., 4.]]).tolist(), [0, 1])

    def test_all_collinear(self):
        xy = np.column_stack((np.arange(5.), 2. * np.arange(5.)))
        self.assertEqual(sorted(convex_hull(xy).tolist()), [0, 4])

    def test_vertices_extreme(self):
        ''' every hull vertex is a strict left turn, removing any of them
        changes the hull '''
        hull = convex_hull(self.random)
        self.assertTrue((turns(self.random, hull) > 0).all())

    def test_contains_all_points(self):
        polygon = Polygon(self.random[convex_hull(self.random)])
        self.assertTrue(polygon.is_valid)
        outline = polygon.buffer(1e-9)
        self.assertTrue(all(outline.covers(Point(p)) for p in self.random))

    def test_matches_shapely(self):
        ''' same area and vertex count as the shapely convex hull '''
        for seed in range(5):
            rng = np.random.default_rng(seed)
            xy = rng.normal(size=(300, 2))
            hull = convex_hull(xy)
            reference = MultiPoint([tuple(p) for p in xy]).convex_hull
            self.assertAlmostEqual(Polygon(xy[hull]).area, reference.area)
            self.assertEqual(len(hull),
                             len(reference.exterior.coords) - 1)

    def test_points_on_circle(self):
        theta = np.linspace(0, 2 * np.pi, 64, endpoint=False)
        xy = np.column_stack((np.cos(theta), np.sin(theta)))
        xy = np.concatenate((xy, 0.5 * xy))
        hull = convex_hull(xy)
        self.assertEqual(sorted(hull.tolist()), list(range(64)))

    def test_points_left_of_anchor(self):
        ''' points in the upper left quadrant are ordered after the ones on
        the right '''
        xy = np.array([[0., 0.], [-2., 1.], [2., 1.], [-1., 3.], [1., 3.]])
        hull = convex_hull(xy)
        self.assertEqual(hull.tolist(), [0, 2, 4, 3, 1])


if __name__ == '__main__':
    unittest.main()
