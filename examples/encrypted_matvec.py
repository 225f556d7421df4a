#!/usr/bin/env python3
"""
Encrypted matrix-vector product example.

Shows the basic workflow with the OpenFHE backend:
- context creation sized for a matrix shape
- single product M.T @ v with both operands encrypted
- batched products and a full matrix product
"""

import argparse
import logging
import time

import torch

import ckks_linalg
from ckks_linalg import CKKSLinalgContext


def parse_args():
    parser = argparse.ArgumentParser(description="Encrypted matrix-vector product demo")
    parser.add_argument("--rows", type=int, default=4, help="matrix row count")
    parser.add_argument("--cols", type=int, default=4, help="matrix column count")
    parser.add_argument("--strategy", choices=["log", "linear"], default="log")
    parser.add_argument("--verbose", action="store_true", help="show library logging")
    return parser.parse_args()


def main():
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if not ckks_linalg.is_available():
        print("OpenFHE backend not installed: pip install 'ckks-linalg[openfhe]'")
        return

    # 1. Context with rotation keys for this row count
    ctx = CKKSLinalgContext.for_shape(args.rows, args.cols, batch=4, strategy=args.strategy)
    print(ctx)
    print(f"Slots: {ctx.num_slots}")

    # 2. Worked example
    M = [[0, 1, 2, 3], [4, 5, 6, 7], [8, 9, 10, 11], [12, 13, 14, 15]]
    v = [1, 2, 3, 4]
    if (args.rows, args.cols) == (4, 4):
        result = ckks_linalg.multiply(M, v, ctx, strategy=args.strategy, decimals=2)
        print("\n=== Worked example ===")
        print(f"M.T @ v (encrypted): {result}")

    # 3. Random matrix
    matrix = torch.randn(args.rows, args.cols, dtype=torch.float64)
    vector = torch.randn(args.rows, dtype=torch.float64)

    start = time.time()
    result = ckks_linalg.multiply(matrix, vector, ctx, strategy=args.strategy)
    elapsed = time.time() - start
    expected = matrix.t() @ vector
    print(f"\n=== Random {args.rows}x{args.cols} ===")
    print(f"plaintext: {expected}")
    print(f"encrypted: {result}")
    print(f"error: {(result - expected).abs().max():.2e} ({elapsed:.2f}s)")

    # 4. Batched vectors share one ciphertext multiplication
    vectors = torch.randn(4, args.rows, dtype=torch.float64)
    batch = ckks_linalg.multiply_batch(matrix, vectors, ctx, strategy=args.strategy)
    print(f"\n=== Batch of {len(vectors)} ===")
    print(f"error: {(batch - vectors @ matrix).abs().max():.2e}")

    # 5. Matrix product, row by row
    left = torch.randn(6, args.rows, dtype=torch.float64)
    product = ckks_linalg.matmul(left, matrix, ctx, strategy=args.strategy)
    print(f"\n=== matmul (6x{args.rows}) @ ({args.rows}x{args.cols}) ===")
    print(f"error: {(product - left @ matrix).abs().max():.2e}")


if __name__ == "__main__":
    main()
