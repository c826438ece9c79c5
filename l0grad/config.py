"""
Run configuration for L0 gradient minimization.

Two file formats are understood:

* a single line of flag/value pairs, the format written back by ``save_config``::

    --lambda 0.01 --beta_max 10000.0 --kappa 1.5 --exact true

* a YAML mapping (``.yaml`` / ``.yml``) with the keys ``lambda``, ``beta_max``,
  ``kappa``, ``exact`` and the optional ``iter_max``, ``boundary`` and ``on_failure``.
"""

import argparse
import math
import os
from dataclasses import MISSING, dataclass, fields, replace

import yaml
from rich import print

from l0grad.errors import ConfigurationError
from l0grad.utils import BOUNDARY_POLICIES

FAILURE_POLICIES = ("raise", "skip", "fallback", "ignore")
CONFIG_KEYS = ("lambda", "beta_max", "kappa", "exact")


@dataclass(frozen=True)
class L0Config:
    lam: float
    beta_max: float
    kappa: float
    exact: bool
    iter_max: int = 1000
    boundary: str = "dropped"
    on_failure: str = "raise"

    def __post_init__(self):
        for name in ("lam", "beta_max", "kappa"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
                raise ConfigurationError(f"{name} must be a finite number, got {value!r}")
        if self.lam <= 0:
            raise ConfigurationError(f"lambda must be positive, got {self.lam}")
        if self.beta_max <= 0:
            raise ConfigurationError(f"beta_max must be positive, got {self.beta_max}")
        if self.kappa <= 1:
            raise ConfigurationError(f"kappa must be greater than 1, got {self.kappa}")
        if not isinstance(self.exact, bool):
            raise ConfigurationError(f"exact must be a boolean, got {self.exact!r}")
        if not isinstance(self.iter_max, int) or isinstance(self.iter_max, bool) or self.iter_max < 1:
            raise ConfigurationError(f"iter_max must be a positive integer, got {self.iter_max!r}")
        if self.boundary not in BOUNDARY_POLICIES:
            raise ConfigurationError(
                f"boundary must be one of {BOUNDARY_POLICIES}, got {self.boundary!r}"
            )
        if self.on_failure not in FAILURE_POLICIES:
            raise ConfigurationError(
                f"on_failure must be one of {FAILURE_POLICIES}, got {self.on_failure!r}"
            )

    @property
    def beta0(self) -> float:
        return 2 * self.lam

    def with_overrides(self, **kwargs):
        """Copy of the configuration with the non-None keyword arguments replaced."""
        kwargs = {k: v for k, v in kwargs.items() if v is not None}
        return replace(self, **kwargs) if kwargs else self


class _ConfigArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise ConfigurationError(f"Invalid configuration line: {message}")


def _config_line_parser():
    parser = _ConfigArgumentParser(prog="config", add_help=False)
    parser.add_argument("--lambda", dest="lam", type=float, required=True)
    parser.add_argument("--beta_max", type=float, required=True)
    parser.add_argument("--kappa", type=float, required=True)
    parser.add_argument("--exact", choices=["true", "false"], required=True)
    return parser


def parse_config_line(line: str) -> L0Config:
    arguments = line.rstrip("\r\n").split(" ")
    if len(arguments) != 2 * len(CONFIG_KEYS):
        raise ConfigurationError(
            f"Expected {2 * len(CONFIG_KEYS)} fields in the configuration line, got {len(arguments)}"
        )
    args = _config_line_parser().parse_args(arguments)
    return L0Config(
        lam=args.lam,
        beta_max=args.beta_max,
        kappa=args.kappa,
        exact=args.exact == "true",
    )


def _parse_exact(value) -> bool:
    if isinstance(value, bool):
        return value
    if value in ("true", "false"):
        return value == "true"
    raise ConfigurationError(f"exact must be 'true' or 'false', got {value!r}")


def parse_config_dict(params: dict) -> L0Config:
    if not isinstance(params, dict):
        raise ConfigurationError("Configuration file must hold a mapping")
    optional = tuple(f.name for f in fields(L0Config) if f.default is not MISSING)
    unknown = set(params) - set(CONFIG_KEYS) - set(optional)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
    missing = [key for key in CONFIG_KEYS if key not in params]
    if missing:
        raise ConfigurationError(f"Missing configuration keys: {missing}")
    try:
        kwargs = {
            "lam": float(params["lambda"]),
            "beta_max": float(params["beta_max"]),
            "kappa": float(params["kappa"]),
        }
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration value: {e}") from e
    kwargs["exact"] = _parse_exact(params["exact"])
    for key in optional:
        if key in params:
            kwargs[key] = params[key]
    return L0Config(**kwargs)


def load_config(config_path) -> L0Config:
    """Loads the run configuration from a flag line file or a YAML file."""
    try:
        with open(config_path, "r") as file:
            if os.path.splitext(str(config_path))[1].lower() in (".yaml", ".yml"):
                try:
                    params = yaml.safe_load(file)
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
                return parse_config_dict(params)
            line = file.readline()
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e
    return parse_config_line(line)


def format_config(config: L0Config) -> str:
    return (
        f"--lambda {config.lam!r} "
        f"--beta_max {config.beta_max!r} "
        f"--kappa {config.kappa!r} "
        f"--exact {'true' if config.exact else 'false'}"
    )


def save_config(config: L0Config, filename):
    with open(filename, "w") as f:
        f.write(format_config(config) + "\n")


def print_config(config: L0Config):
    print("*** Configuration ***")
    print(f"lambda : {config.lam}")
    print(f"beta_max : {config.beta_max}")
    print(f"kappa : {config.kappa}")
    print(f"exact : {config.exact}")
    print(f"iter_max : {config.iter_max}")
    print(f"boundary : {config.boundary}")
    print(f"on_failure : {config.on_failure}")
    print("*********************")
