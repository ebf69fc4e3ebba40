"""Entry point for ``python -m perlcritic_shims``."""

from perlcritic_shims.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
