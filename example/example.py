"""
PyTreePoints - Trunk, height and canopy metrics from single-tree point clouds
-----------------------------------------------------------------------------
Copyright: 2018, Jan Zörner
Licence: GNU GPLv3
"""

import argparse
import logging
from datetime import datetime

from pytreepoints import (
    process_files, ZBUCKET_RANGE, TRUNK_BUCKET_DIFF_THRESH,
    TRUNK_BUCKET_MAXDIFF_THRESH
)


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description='Trunk diameter, tree height and maximum branch diameter '
                    'of single-tree point clouds'
    )
    parser.add_argument('files', nargs='*',
                        default=['data/tree1.txt', 'data/tree2.txt',
                                 'data/tree3.txt', 'data/tree4.las'],
                        help='text (x, y, z per line) or LAS/LAZ files')
    parser.add_argument('--z-range', type=float, default=ZBUCKET_RANGE,
                        help='height of each bucket')
    parser.add_argument('--diff-thresh', type=float,
                        default=TRUNK_BUCKET_DIFF_THRESH,
                        help='maximum relative size change along the trunk')
    parser.add_argument('--maxdiff-thresh', type=float,
                        default=TRUNK_BUCKET_MAXDIFF_THRESH,
                        help='relative drop from the crown to the trunk')
    parser.add_argument('--drop-below', action='store_true',
                        help='trunk where the crown-to-trunk drop stays below '
                             'the maxdiff threshold')
    parser.add_argument('--exact', action='store_true',
                        help='canopy diameter from the antipodal sweep only')
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser.parse_args(argv)


if __name__ == '__main__':

    args = parse_arguments()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    TSTART = datetime.now()

    print('=== Tree Point Cloud Project ===')

    results = process_files(
        args.files, z_range=args.z_range, diff_thresh=args.diff_thresh,
        maxdiff_thresh=args.maxdiff_thresh, drop_above=not args.drop_below,
        exact_canopy=args.exact
    )

    for _, tree in results.iterrows():
        print(f"\nData for file {tree.file}")
        if tree.error:
            print(f"Error: {tree.error}")
        print(f"Trunk diameter: {tree.trunkdiam:f}")
        print(f"Tree height: {tree.treeheight:f}")
        print(f"Max branch diameter: {tree.maxbranchdiam:f}")
        print('===========================')

    TEND = datetime.now()

    print(f"\nNumber of trees processed: {results.error.isna().sum()}"
          f"/{len(results)}")
    print(f'Processing time: {TEND-TSTART} [HH:MM:SS]')
