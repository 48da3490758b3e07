"""Entry point for ``python -m schema_fk_checker``."""

from schema_fk_checker.main import main

if __name__ == "__main__":
    raise SystemExit(main())
