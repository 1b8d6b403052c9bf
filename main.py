# main.py
import sys
import logging
import argparse
import zipfile
import scipy.sparse as sp
from config import FRAME_WIDTH, SUPPORTED_DTYPES, VERSION
from core.similarity_engine import (
    cosine_similarity,
    select_backend,
    top_matches,
    SimilarityError,
    DeviceUnavailable,
    SparseOpsGPU
)
from core.utilities.config_manager import config_manager
from core.utilities.gpu_utils import describe_device, print_gpu_info

def build_parser():
    parser = argparse.ArgumentParser(
        description="Match query rows against target rows by sparse cosine similarity"
    )
    parser.add_argument('query', nargs='?', help='Query feature matrix (.npz from scipy.sparse.save_npz)')
    parser.add_argument('target', nargs='?', help='Target feature matrix (.npz from scipy.sparse.save_npz)')
    parser.add_argument(
        '--device',
        choices=['auto', 'cpu', 'cuda'],
        default=None,
        help='Compute device (default: from config.json)'
    )
    parser.add_argument(
        '--dtype',
        choices=SUPPORTED_DTYPES,
        default=None,
        help='Floating point precision (default: from config.json)'
    )
    parser.add_argument(
        '--top-k',
        type=int,
        default=None,
        help='Matches to report per query row (default: from config.json)'
    )
    parser.add_argument('--progress', action='store_true', help='Show a progress bar over GPU blocks')
    parser.add_argument('--gpu-info', action='store_true', help='Print detected GPUs and exit')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    return parser

def run(args):
    """Compute and print the best matches; returns the process exit code."""
    if args.gpu_info:
        print_gpu_info()
        return 0

    if not args.query or not args.target:
        print("  Error: both QUERY and TARGET matrices are required")
        return 2

    top_k = args.top_k if args.top_k is not None else config_manager.get_top_k()

    try:
        query = sp.load_npz(args.query)
        target = sp.load_npz(args.target)
    except (OSError, ValueError, zipfile.BadZipFile) as e:
        print(f"  Error: could not load feature matrices ({e})")
        return 1

    try:
        backend = select_backend(device=args.device, dtype=args.dtype)
        if args.progress and isinstance(backend, SparseOpsGPU):
            backend.show_progress = True
        print(f"  Backend: {backend.name} | {query.shape[0]:,} query rows x {target.shape[0]:,} target rows")
        similarities = cosine_similarity(query, target, backend=backend)
        indices, scores = top_matches(similarities, top_k=top_k)
    except (SimilarityError, ValueError, DeviceUnavailable) as e:
        print(f"  Error: {e}")
        return 1

    print("═" * FRAME_WIDTH)
    for row, (row_indices, row_scores) in enumerate(zip(indices, scores)):
        matches = ", ".join(f"{j} ({s:.4f})" for j, s in zip(row_indices, row_scores))
        print(f"  {row}: {matches}")
    return 0

def main(argv=None):
    """Main entry point for the sparsematch CLI."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    print(f"\n  sparsematch {VERSION} | System Info: {describe_device()}")
    return run(args)

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
        sys.exit(0)
