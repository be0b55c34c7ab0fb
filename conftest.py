"""
Pytest configuration for project root.

Ensures the package can be imported in tests without installing it.
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))
