"""Module entrypoint for `python -m coderelay`."""

try:
    from .cli import run
except ImportError:
    # Frozen one-file builds can execute this module outside package context.
    from coderelay.cli import run


if __name__ == "__main__":
    raise SystemExit(run())
