"""
main.py — command-line entry point for development use.

For production / packaging, prefer:
    python -m bed_scheduler.cli --instance FILE
or install with `pip install -e .` and run:
    bed-scheduler --instance FILE

sys.path manipulation here is a fallback so that running `python main.py`
works without a prior editable install.
"""
import sys
from pathlib import Path

_src = Path(__file__).parent / "src"
if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from bed_scheduler.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
