from .pytreepoints import (
    PointCloud, BucketIndex, Point3D, TreeMetrics, TrunkLocation,
    EnclosingCircle, Unprocessed, Processed, Failed,
    TreePointsError, IngestionError, AllocationError, TrunkNotFoundError,
    HeightSearchExhaustedError,
    enclosing_circle, convex_hull, farthest_pair, process_files,
    ZBUCKET_RANGE, TRUNK_BUCKET_DIFF_THRESH, TRUNK_BUCKET_MAXDIFF_THRESH,
    MAX_LINE_LENGTH
)
