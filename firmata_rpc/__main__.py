"""Allow ``python -m firmata_rpc`` to launch the bridge."""

import sys

from firmata_rpc.app.bridge import run


if __name__ == "__main__":
    sys.exit(run(sys.argv[1:]))
