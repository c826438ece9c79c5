import argparse
import os
import sys

from rich import print
from rich.markup import escape

from l0grad import __version__
from l0grad.config import FAILURE_POLICIES, load_config, print_config
from l0grad.dataset import load_image, save_results
from l0grad.errors import ConfigurationError, FactorizationError, InputError
from l0grad.models import L0GradientModel
from l0grad.utils import BOUNDARY_POLICIES

EXIT_CONFIG = 1
EXIT_INPUT = 3
EXIT_NUMERICAL = 4


def build_parser():
    parser = argparse.ArgumentParser(
        prog="l0grad",
        description="Edge preserving smoothing by L0 gradient minimization.",
    )
    parser.add_argument("input", type=str, help="input image filename")
    parser.add_argument("output", type=str, help="output directory")
    parser.add_argument("config", type=str, help="config filename")
    parser.add_argument("--iter-max", type=int, default=None, help="hard cap on the number of outer iterations")
    parser.add_argument("--boundary", choices=BOUNDARY_POLICIES, default=None, help="boundary policy of the gradient operators")
    parser.add_argument("--on-failure", choices=FAILURE_POLICIES, default=None, help="what to do when the exact factorization fails")
    parser.add_argument("-q", "--quiet", action="store_true", help="do not print per iteration progress")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    print(f"input path : {args.input}")
    print(f"output path : {args.output}")
    print(f"config file : {args.config}")

    try:
        config = load_config(args.config).with_overrides(
            iter_max=args.iter_max, boundary=args.boundary, on_failure=args.on_failure
        )
    except ConfigurationError as e:
        print(f"[red]{escape(str(e))}[/red]", file=sys.stderr)
        return EXIT_CONFIG
    print_config(config)

    try:
        image = load_image(args.input)
    except InputError as e:
        print(f"[red]{escape(str(e))}[/red]", file=sys.stderr)
        return EXIT_INPUT

    print("minimizing L0 gradient...")
    model = L0GradientModel(image, config)
    status = 0
    try:
        model.solve(verbose=not args.quiet)
    except FactorizationError as e:
        print(f"[red]{escape(str(e))}[/red]", file=sys.stderr)
        status = EXIT_NUMERICAL

    paths = save_results(model.results, args.output, config)
    print(f"{len(paths)} results saved to {os.path.abspath(args.output)}")
    return status


if __name__ == "__main__":
    sys.exit(main())
