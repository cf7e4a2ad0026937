"""
Pytest configuration for the invoice tests.

The modules live at the project root, so put it on the path.
"""

import sys
import os

root_path = os.path.join(os.path.dirname(__file__), '..')
if root_path not in sys.path:
    sys.path.insert(0, root_path)
