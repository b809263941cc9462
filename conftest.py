from pathlib import Path
import sys

# `components` is a namespace package rooted here; tests import it without an install.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
