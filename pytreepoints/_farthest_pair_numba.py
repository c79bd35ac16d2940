"""
PyTreePoints - Trunk, height and canopy metrics from single-tree point clouds
-----------------------------------------------------------------------------
Copyright: 2018, Jan Zörner
Licence: GNU GPLv3
"""

from numba import jit


@jit(nopython=True, nogil=True, parallel=False)
def _farthest_pair(xs, ys):
    '''
    Local hill-climb for the farthest pair of vertices of a convex polygon.

    Starting from the first two vertices, both ends of the current pair may
    move to one of their neighbours along the polygon. The pair moves to the
    neighbouring pair with the largest squared distance until none improves.

    Parameters
    ----------
    xs :      ndarray
              x-coordinates of the polygon vertices (at least two)
    ys :      ndarray
              y-coordinates of the polygon vertices

    Returns
    -------
    int
        index of the first vertex of the pair
    int
        index of the second vertex of the pair
    float
        squared distance between the two vertices
    '''
    h = xs.shape[0]
    i = 0
    j = 1
    best = (xs[i] - xs[j]) ** 2 + (ys[i] - ys[j]) ** 2

    improved = True
    while improved:
        improved = False
        ci = i
        cj = j
        for di in range(-1, 2):
            for dj in range(-1, 2):
                ni = (ci + di + h) % h
                nj = (cj + dj + h) % h
                if ni == nj:
                    continue
                d2 = (xs[ni] - xs[nj]) ** 2 + (ys[ni] - ys[nj]) ** 2
                if d2 > best:
                    best = d2
                    i = ni
                    j = nj
                    improved = True

    return i, j, best


@jit(nopython=True, nogil=True, parallel=False)
def _antipodal_sweep(xs, ys):
    '''
    Exact farthest pair of a strictly convex, counter-clockwise polygon by
    walking antipodal vertex pairs (rotating calipers).

    Parameters
    ----------
    xs :      ndarray
              x-coordinates of the polygon vertices (at least three)
    ys :      ndarray
              y-coordinates of the polygon vertices

    Returns
    -------
    int, int, float
        indices of the diametral pair and their squared distance
    '''
    h = xs.shape[0]
    bi = 0
    bj = 0
    best = 0.
    j = 1
    for i in range(h):
        ni = (i + 1) % h
        ex = xs[ni] - xs[i]
        ey = ys[ni] - ys[i]
        # advance j while it gets farther from the edge (i, ni)
        while True:
            nj = (j + 1) % h
            area_j = abs(ex * (ys[j] - ys[i]) - ey * (xs[j] - xs[i]))
            area_nj = abs(ex * (ys[nj] - ys[i]) - ey * (xs[nj] - xs[i]))
            if area_nj > area_j:
                j = nj
            else:
                break
        # j and its successor cover parallel antipodal edges
        nj = (j + 1) % h
        for k in (i, ni):
            for m in (j, nj):
                d2 = (xs[k] - xs[m]) ** 2 + (ys[k] - ys[m]) ** 2
                if d2 > best:
                    best = d2
                    bi = k
                    bj = m

    return bi, bj, best
