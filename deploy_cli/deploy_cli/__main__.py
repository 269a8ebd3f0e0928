"""Entry point for `python -m deploy_cli` and the `content-deploy` console script."""

from __future__ import annotations

from deploy_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
