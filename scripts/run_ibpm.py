#!/usr/bin/env python3
"""
Run an immersed boundary projection method simulation.

Usage:
    python scripts/run_ibpm.py cases/cylinder.yaml
    python scripts/run_ibpm.py cases/cylinder.yaml --scheme rk3 --nsteps 100
    python scripts/run_ibpm.py cases/cylinder.yaml --model linear --outdir out/linear
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from ibpm.solvers.runner import main


if __name__ == "__main__":
    sys.exit(main())
