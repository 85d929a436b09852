"""
Entry point for deployments that run ``streamlit run app.py``.

The dashboard lives in Welcome.py; importing it renders the landing page
and Streamlit picks up pages/ next to it.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

import Welcome  # noqa: E402,F401
