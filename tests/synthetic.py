""" Synthetic single-tree point clouds for the test cases """

import numpy as np


def ring(radius, z, spacing, cx=0., cy=0.):
    """ points on a horizontal circle, roughly `spacing` apart """
    n = max(1, int(round(2 * np.pi * radius / spacing)))
    theta = 2 * np.pi * np.arange(n) / n
    return np.column_stack((cx + radius * np.cos(theta),
                            cy + radius * np.sin(theta),
                            np.full(n, z)))


def ground_disc(radius, hole, spacing, z=0.):
    """ regular grid on a flat disc, leaving out the area under the trunk """
    steps = int(round(2 * radius / spacing)) + 1
    x, y = np.meshgrid(np.linspace(-radius, radius, steps),
                       np.linspace(-radius, radius, steps))
    x = x.ravel()
    y = y.ravel()
    d = np.hypot(x, y)
    keep = (d >= hole) & (d <= radius)
    return np.column_stack((x[keep], y[keep], np.full(keep.sum(), z)))


def cylinder_sphere_tree(trunk_radius=0.1, crown_radius=1.0, height=5.0,
                         spacing=0.05, ground_radius=1.5, ground=True):
    ''' Cylinder trunk topped by a spherical crown, standing on a flat disc

    Surfaces are sampled in horizontal rings `spacing` apart, offset by a
    quarter spacing so no ring falls on a bucket boundary of width
    2 x spacing.

    Returns
    -------
    ndarray
        nx3 array of points, highest point exactly at `height`
    '''
    crown_base = height - 2 * crown_radius
    crown_centre = height - crown_radius

    parts = []
    for k in range(int(round(crown_base / spacing))):
        z = spacing / 4 + k * spacing
        parts.append(ring(trunk_radius, z, spacing))

    for k in range(int(round(2 * crown_radius / spacing))):
        z = crown_base + spacing / 4 + k * spacing
        r = np.sqrt(crown_radius ** 2 - (z - crown_centre) ** 2)
        parts.append(ring(r, z, spacing))
    parts.append(np.array([[0., 0., height]]))

    if ground:
        parts.append(ground_disc(ground_radius, 1.5 * trunk_radius, spacing))
    else:
        # keeps min_z at 0 so the bucket boundaries stay between rings
        parts.append(np.array([[0., 0., 0.]]))

    return np.concatenate(parts)


def write_txt(points, fname):
    with open(fname, 'w') as outfile:
        for x, y, z in points:
            outfile.write(f'{x:.6f}, {y:.6f}, {z:.6f}\n')
