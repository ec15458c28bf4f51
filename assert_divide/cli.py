"""
CLI entry point for assert-divide.

Usage:
    python -m assert_divide Program.dfy --line 42 [--provider openai|anthropic]
        [--model gpt-4o] [--max-depth 5] [--dafny /path/to/dafny]
        [--manifest assert_divide/runs/MANIFEST.md] [-v]

--line is 1-based, as shown in an editor. The CLI is a thin wrapper around
orchestrator.run_decomposition(): it resolves settings (flags override
environment variables / .env), configures logging, and maps the outcome to an
exit code:
    0  assertion proved
    1  usage error, missing file, or the line is not an assertion
    2  gave up (depth exhausted, oracle or verifier failure)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from assert_divide.config import PROVIDERS, DecomposeConfig
from assert_divide.models import NotAnObligation
from assert_divide.runner.orchestrator import run_decomposition


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="assert_divide",
        description=(
            "Decompose a failing Dafny assertion into intermediate assertions "
            "suggested by an LLM until the verifier accepts it."
        ),
    )
    parser.add_argument(
        "file",
        type=Path,
        help="Dafny source file containing the assertion.",
    )
    parser.add_argument(
        "--line",
        type=int,
        required=True,
        help="1-based line number of the assertion to decompose.",
    )
    parser.add_argument(
        "--provider",
        choices=PROVIDERS,
        default=None,
        help="Suggestion oracle backend (default: $ASSERT_DIVIDE_PROVIDER or openai).",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Model name for the chosen provider.",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Maximum number of candidates to try (default: 5).",
    )
    parser.add_argument(
        "--dafny",
        type=str,
        default=None,
        dest="dafny_path",
        help="Path to the dafny executable (default: $DAFNY_PATH or 'dafny').",
    )
    parser.add_argument(
        "--manifest",
        type=str,
        default=None,
        dest="manifest_path",
        help="Append the session record to this MANIFEST.md.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.line < 1:
        print(f"Error: --line must be >= 1, got {args.line}", file=sys.stderr)
        sys.exit(1)

    try:
        config = DecomposeConfig.from_env().with_overrides(
            provider=args.provider,
            model=args.model,
            max_depth=args.max_depth,
            dafny_path=args.dafny_path,
            manifest_path=args.manifest_path,
        )
        result = run_decomposition(args.file, args.line - 1, config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except NotAnObligation as e:
        print(f"Not an assertion: {e}. Place the cursor on an assert statement.", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(result.message())
    if result.history:
        print("Promoted past:")
        for obligation in result.history:
            print(f"  line {obligation.line + 1}: {obligation.statement}")

    sys.exit(0 if result.proved else 2)
