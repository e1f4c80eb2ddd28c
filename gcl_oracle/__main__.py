"""Allow ``python -m gcl_oracle``."""

from gcl_oracle.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
