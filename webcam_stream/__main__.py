"""Allow ``python -m webcam_stream`` to launch the server."""

from __future__ import annotations

import sys


def main() -> None:
    from webcam_stream import run
    sys.exit(run(sys.argv[1:]))


if __name__ == "__main__":
    main()
