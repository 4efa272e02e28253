"""Module entrypoint for `python -m acpquest.client`."""

from __future__ import annotations

from acpquest.client.client import run


if __name__ == "__main__":
    run()
