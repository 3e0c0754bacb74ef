import sys
from pathlib import Path

# Allow running the suite from a source checkout without installing.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
