import sys
from pathlib import Path

# backend/ holds flat top-level modules (main, state, kpi, ...); make them
# importable when running pytest from a plain checkout.
ROOT_DIR = Path(__file__).parent.absolute()
backend_dir = ROOT_DIR / "backend"

if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))
