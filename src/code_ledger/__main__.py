"""Allow running with ``python -m code_ledger``."""

from code_ledger.cli.main import app

if __name__ == "__main__":
    app()
