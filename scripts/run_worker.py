"""
Runs the traffic camera analyzer from a source checkout.

See ``python scripts/run_worker.py --help`` for the available commands.
"""
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from trafficjam.run_worker import main


if __name__ == "__main__":
    main()
