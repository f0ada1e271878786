"""
Check a finished flip from its disclosed values.

Usage:
    python scripts/verify_flip.py SERVER_SEED PLAYER_SEED NONCE DIGEST OUTCOME [--server-seed-hash HASH]

Exit status is 0 when the flip verifies, 1 otherwise.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fairflip.core.verification import verify


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Verify a FairFlip coin flip")
    parser.add_argument("server_seed")
    parser.add_argument("player_seed")
    parser.add_argument("nonce")
    parser.add_argument("digest")
    parser.add_argument("outcome", help="HEADS or TAILS")
    parser.add_argument(
        "--server-seed-hash",
        default=None,
        help="Commitment published before the flip, checked against sha256(server_seed)",
    )
    args = parser.parse_args(argv)

    result = verify(
        args.server_seed,
        args.player_seed,
        args.nonce,
        args.digest,
        args.outcome,
        server_seed_hash=args.server_seed_hash,
    )

    if result.valid:
        print(f"VALID: {result.outcome} (digest {result.digest})")
        return 0

    print(f"INVALID: {result.reason}")
    if result.digest:
        print(f"  recomputed digest:  {result.digest}")
        print(f"  recomputed outcome: {result.outcome}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
