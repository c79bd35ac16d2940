"""
PyTreePoints - Trunk, height and canopy metrics from single-tree point clouds
-----------------------------------------------------------------------------
Copyright: 2018, Jan Zörner
Licence: GNU GPLv3
"""

from numba import jit


@jit(nopython=True, nogil=True, parallel=False)
def _locate_trunk(lengths, diff_thresh, maxdiff_thresh, drop_above):
    '''
    Find the highest bucket that is part of the trunk.

    Seen from the top, bucket sizes grow to the widest point of the crown,
    shrink towards the trunk, stay roughly constant along the trunk and jump
    at the ground. A bucket is the top of the trunk when it is about as large
    as the bucket above it and far smaller than the largest bucket seen so far.

    Parameters
    ----------
    lengths :         ndarray
                      number of points per bucket, lowest bucket first
    diff_thresh :     float
                      maximum relative size change to the bucket above
    maxdiff_thresh :  float
                      threshold on the relative drop from the widest bucket
    drop_above :      bool
                      True if the drop has to be at least `maxdiff_thresh`,
                      False if it has to be at most `maxdiff_thresh`

    Returns
    -------
    int
        index of the topmost trunk bucket, -1 if there is none
    '''
    nbuckets = lengths.shape[0]
    running_max = lengths[nbuckets - 1]

    for curr in range(nbuckets - 2, -1, -1):
        n_curr = lengths[curr]

        # still widening towards the crown
        if n_curr >= running_max:
            running_max = n_curr
            continue

        # empty slab, no cross-section to compare
        if n_curr == 0:
            continue

        ratio_diff = abs(n_curr - lengths[curr + 1]) / n_curr
        if ratio_diff > diff_thresh:
            continue

        ratio_maxdiff = abs(running_max - n_curr) / n_curr
        if drop_above:
            found = ratio_maxdiff >= maxdiff_thresh
        else:
            found = ratio_maxdiff <= maxdiff_thresh

        if found:
            return curr

    return -1


@jit(nopython=True, nogil=True, parallel=False)
def _ground_search(xs, ys, offsets, trunk, cx, cy, radius, diff_thresh):
    '''
    Search downwards from the trunk bucket for the ground below the trunk.

    Parameters
    ----------
    xs :           ndarray
                   x-coordinates of all points, sorted by bucket
    ys :           ndarray
                   y-coordinates of all points, sorted by bucket
    offsets :      ndarray
                   start index of each bucket in `xs`/`ys`, plus the total
    trunk :        int
                   index of the topmost trunk bucket
    cx, cy :       float
                   centre of the tolerance circle around the trunk
    radius :       float
                   radius of the tolerance circle
    diff_thresh :  float
                   maximum relative deviation from the trunk bucket size

    Returns
    -------
    int
        bucket of the ground point, -1 if none was found
    int
        index of the ground point in `xs`/`ys`, -1 if none was found
    '''
    n_trunk = offsets[trunk + 1] - offsets[trunk]
    r2 = radius ** 2

    # 1. skip buckets of consistent trunk size
    curr = trunk - 1
    while curr >= 0:
        n_curr = offsets[curr + 1] - offsets[curr]
        if abs(n_curr - n_trunk) / n_trunk > diff_thresh:
            break
        curr -= 1

    # 2. only count trunk points inside the circle until the ground shows up
    while curr >= 0:
        inside = 0
        for k in range(offsets[curr], offsets[curr + 1]):
            if (xs[k] - cx) ** 2 + (ys[k] - cy) ** 2 <= r2:
                inside += 1
        if abs(inside - n_trunk) / n_trunk > diff_thresh:
            break
        curr -= 1

    # 3. closest point outside the circle, starting two buckets back up
    start = min(curr + 2, trunk - 1)
    cutoff = 16. * r2
    for bucket in range(start, -1, -1):
        best = -1
        best_d2 = cutoff
        for k in range(offsets[bucket], offsets[bucket + 1]):
            d2 = (xs[k] - cx) ** 2 + (ys[k] - cy) ** 2
            if d2 > r2 and d2 < best_d2:
                best = k
                best_d2 = d2
        if best >= 0:
            return bucket, best

    return -1, -1
