#!/usr/bin/env python3
"""
fuzz_gpp.py - Fuzz test the GPP decoder

Verifies the decoder fails fast with a GppError on malformed input and never
raises anything else. Seed strings are mutated by truncation, extension,
character substitution, separator shuffling and header corruption.

Usage:
    python tools/fuzz_gpp.py                      # 10 second fuzz, built-in seeds
    python tools/fuzz_gpp.py --duration 60        # 1 minute fuzz
    python tools/fuzz_gpp.py --seed 12345         # Reproducible
    python tools/fuzz_gpp.py --vectors tests/vectors/gpp_vectors.yaml
"""

import argparse
import random
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

sys.path.insert(0, str(Path(__file__).parent))
from base64url import ALPHABET
from gpp_config import DecodeOptions, STRICT
from gpp_errors import GppError
from gpp_string import GppDecoder, GppEncoder


SEED_STRINGS = [
    'DBABMA~CPXxRfAPXxRfAAfKABENB-CgAAAAAAAAAAYgAAAAAAAA',
    'DBACNY~CPXxRfAPXxRfAAfKABENB-CgAAAAAAAAAAYgAAAAAAAA~1YNN',
    'DBABLA~BVVqAAEABCA.QA',
    'DBABTA~1YNN',
]

WIRE_CHARS = ALPHABET + '~.'


@dataclass
class FuzzStats:
    """Statistics from a fuzz run."""
    total_inputs: int = 0
    decode_success: int = 0
    decode_error: int = 0
    crashes: int = 0
    roundtrip_failures: int = 0
    duration_sec: float = 0.0
    seed: int = 0
    crash_inputs: List[str] = field(default_factory=list)

    @property
    def inputs_per_sec(self) -> float:
        if self.duration_sec > 0:
            return self.total_inputs / self.duration_sec
        return 0.0


def load_seed_strings(path: Path) -> List[str]:
    """Valid GPP strings from a YAML test vector file."""
    with open(path) as f:
        doc = yaml.safe_load(f) or {}
    return [tv['gpp'] for tv in doc.get('test_vectors', []) if 'gpp' in tv]


class GppFuzzer:
    """Mutation fuzzer for the GPP decoder."""

    def __init__(self, seeds: Optional[List[str]] = None, seed: Optional[int] = None,
                 options: Optional[DecodeOptions] = None):
        self.seeds = seeds or SEED_STRINGS
        self.decoder = GppDecoder(options)
        self.encoder = GppEncoder()
        self.seed = seed if seed is not None else random.randint(0, 2**32)
        self.rng = random.Random(self.seed)
        self.stats = FuzzStats(seed=self.seed)

    def generate_random(self, min_len: int = 0, max_len: int = 120) -> str:
        length = self.rng.randint(min_len, max_len)
        return ''.join(self.rng.choice(WIRE_CHARS) for _ in range(length))

    def generate_truncated(self, text: str) -> str:
        if not text:
            return ''
        return text[:self.rng.randint(0, len(text) - 1)]

    def generate_extended(self, text: str) -> str:
        return text + self.generate_random(1, 20)

    def generate_substituted(self, text: str) -> str:
        """Replace random characters, occasionally with non-alphabet ones."""
        if not text:
            return ''
        chars = list(text)
        for _ in range(self.rng.randint(1, max(1, len(chars) // 4))):
            pos = self.rng.randint(0, len(chars) - 1)
            if self.rng.random() < 0.1:
                chars[pos] = self.rng.choice('=+/ \x00é')
            else:
                chars[pos] = self.rng.choice(WIRE_CHARS)
        return ''.join(chars)

    def generate_shuffled_segments(self, text: str) -> str:
        segments = text.split('~')
        self.rng.shuffle(segments)
        return '~'.join(segments)

    def generate_header_swap(self, text: str) -> str:
        """Keep the sections but declare a random header."""
        header, _, rest = text.partition('~')
        return self.generate_random(4, 10).replace('~', '').replace('.', '') + '~' + rest

    def fuzz_one(self, text: str) -> bool:
        """
        Decode one input.
        Returns False when anything other than GppError escaped.
        """
        self.stats.total_inputs += 1
        try:
            consent = self.decoder.decode(text)
        except GppError:
            self.stats.decode_error += 1
            return True
        except Exception:
            self.stats.crashes += 1
            self.stats.crash_inputs.append(text)
            return False

        self.stats.decode_success += 1
        try:
            if self.decoder.decode(self.encoder.encode(consent)) != consent:
                self.stats.roundtrip_failures += 1
                self.stats.crash_inputs.append(text)
        except GppError:
            self.stats.roundtrip_failures += 1
            self.stats.crash_inputs.append(text)
        return True

    def run(self, duration_sec: float = 10.0) -> FuzzStats:
        """Run fuzzing for specified duration."""
        start_time = time.time()
        end_time = start_time + duration_sec

        generators = [
            lambda: self.generate_random(0, 120),
            lambda: self.generate_random(0, 8),
            lambda: self.generate_truncated(self.rng.choice(self.seeds)),
            lambda: self.generate_extended(self.rng.choice(self.seeds)),
            lambda: self.generate_substituted(self.rng.choice(self.seeds)),
            lambda: self.generate_shuffled_segments(self.rng.choice(self.seeds)),
            lambda: self.generate_header_swap(self.rng.choice(self.seeds)),
            lambda: '',
            lambda: '~',
            lambda: 'A' * self.rng.randint(1, 64),
            lambda: '_' * self.rng.randint(1, 64),
        ]

        while time.time() < end_time:
            self.fuzz_one(self.rng.choice(generators)())

        self.stats.duration_sec = time.time() - start_time
        return self.stats


def print_stats(stats: FuzzStats):
    """Print fuzzing statistics."""
    print("\nGPP Decoder Fuzzing Results")
    print("=" * 50)
    print(f"Seed: {stats.seed}")
    print(f"Duration: {stats.duration_sec:.1f}s")
    print(f"Total inputs: {stats.total_inputs}")
    print(f"Rate: {stats.inputs_per_sec:.0f} inputs/sec")
    print(f"Decode success: {stats.decode_success}")
    print(f"Decode errors: {stats.decode_error} (expected)")
    print(f"Round-trip failures: {stats.roundtrip_failures}")
    print(f"Crashes: {stats.crashes}")

    if stats.crash_inputs:
        print("\nFAILING INPUTS (reproducible with --seed):")
        for i, text in enumerate(stats.crash_inputs[:5]):
            print(f"  {i+1}: {text!r}")
        print("\nFAILED: Decoder misbehaved on malformed input!")
    else:
        print("\nPASSED: No crashes detected")


def main():
    parser = argparse.ArgumentParser(description='Fuzz test the GPP decoder')
    parser.add_argument('-d', '--duration', type=float, default=10.0,
                        help='Fuzz duration in seconds (default: 10)')
    parser.add_argument('-s', '--seed', type=int,
                        help='Random seed for reproducibility')
    parser.add_argument('--vectors', type=Path,
                        help='YAML test vector file supplying seed strings')
    parser.add_argument('--strict', action='store_true',
                        help='Decode with strict padding and strict sections')
    args = parser.parse_args()

    seeds = load_seed_strings(args.vectors) if args.vectors else None
    options = STRICT if args.strict else None

    fuzzer = GppFuzzer(seeds, seed=args.seed, options=options)
    stats = fuzzer.run(args.duration)
    print_stats(stats)

    sys.exit(1 if stats.crash_inputs else 0)


if __name__ == '__main__':
    main()
