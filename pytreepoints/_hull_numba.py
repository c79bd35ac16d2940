"""
PyTreePoints - Trunk, height and canopy metrics from single-tree point clouds
-----------------------------------------------------------------------------
Copyright: 2018, Jan Zörner
Licence: GNU GPLv3
"""

from numba import jit
import numpy as np


@jit(nopython=True, nogil=True, parallel=False)
def _cross(xs, ys, o, a, b):
    """ z-component of (a - o) x (b - o), positive for a left turn """
    return ((xs[a] - xs[o]) * (ys[b] - ys[o]) -
            (ys[a] - ys[o]) * (xs[b] - xs[o]))


@jit(nopython=True, nogil=True, parallel=False)
def _graham_scan(xs, ys, order):
    '''
    Graham scan over points sorted by polar angle around the anchor.

    The hull stack lives in an arena indexed by position in `order`:
    `below[k]` is the position underneath `k` on the stack, so popping is
    following one link.

    Parameters
    ----------
    xs :      ndarray
              x-coordinates
    ys :      ndarray
              y-coordinates
    order :   ndarray
              point indices, anchor first, the rest sorted by polar angle
              and distance to the anchor

    Returns
    -------
    ndarray
        indices of the hull vertices in counter-clockwise order
    '''
    n = order.shape[0]
    below = np.empty(n, dtype=np.int64)
    below[0] = -1
    top = 0
    size = 1

    for k in range(1, n):
        p = order[k]
        while size >= 2:
            if _cross(xs, ys, order[below[top]], order[top], p) > 0.:
                break
            top = below[top]
            size -= 1
        below[k] = top
        top = k
        size += 1

    hull = np.empty(size, dtype=np.int64)
    for k in range(size - 1, -1, -1):
        hull[k] = order[top]
        top = below[top]
    return hull


@jit(nopython=True, nogil=True, parallel=False)
def _prune_hull(xs, ys, hull):
    '''
    Remove hull vertices that are not strict left turns.

    Walks the cyclic hull as a doubly linked list of live candidates and
    unlinks reflex or collinear vertices until a full round removes nothing.

    Parameters
    ----------
    xs :      ndarray
              x-coordinates
    ys :      ndarray
              y-coordinates
    hull :    ndarray
              indices of the hull vertices in counter-clockwise order

    Returns
    -------
    ndarray
        indices of the extreme hull vertices, order preserved
    '''
    h = hull.shape[0]
    prv = np.empty(h, dtype=np.int64)
    nxt = np.empty(h, dtype=np.int64)
    live = np.ones(h, dtype=np.bool_)
    for k in range(h):
        prv[k] = k - 1 if k > 0 else h - 1
        nxt[k] = k + 1 if k < h - 1 else 0

    alive = h
    stable = 0
    k = 0
    while alive > 2 and stable < alive:
        if _cross(xs, ys, hull[prv[k]], hull[k], hull[nxt[k]]) <= 0.:
            live[k] = False
            nxt[prv[k]] = nxt[k]
            prv[nxt[k]] = prv[k]
            alive -= 1
            stable = 0
            k = prv[k]
        else:
            stable += 1
            k = nxt[k]

    pruned = np.empty(alive, dtype=np.int64)
    j = 0
    for k in range(h):
        if live[k]:
            pruned[j] = hull[k]
            j += 1
    return pruned
